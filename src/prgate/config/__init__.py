"""Configuration for prgate.

Defaults live in ``prgate.config.defaults``. Each component owns its frozen
config dataclass; ``prgate.config.loader`` assembles them from environment
variables and an optional YAML file.
"""
