"""One module per ``prgate`` subcommand, each exposing ``run()``."""
