"""prgate command line interface."""
