"""Assemble prgate configuration from the environment and ~/.prgate/config.yaml."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from prgate.circuit_breaker import CircuitBreakerConfig
from prgate.config.defaults import CONFIG_DIR_NAME, CONFIG_FILE_NAME
from prgate.errors import ConfigError
from prgate.merge.readiness import MergeConfig
from prgate.poller import PollerConfig
from prgate.quality_gates.rules import QualityGateConfig

logger = logging.getLogger(__name__)

SECTIONS = ("circuit_breaker", "poller", "quality_gates", "merge")


def default_config_path() -> Path:
    return Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


@dataclass(frozen=True)
class PRGateConfig:
    """Configuration for every prgate component."""
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)
    quality_gates: QualityGateConfig = field(default_factory=QualityGateConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)

    @classmethod
    def from_env(cls) -> "PRGateConfig":
        return cls(
            circuit_breaker=CircuitBreakerConfig.from_env(),
            poller=PollerConfig.from_env(),
            quality_gates=QualityGateConfig.from_env(),
            merge=MergeConfig.from_env(),
        )

    def merged(self, data: Optional[Mapping[str, Any]]) -> "PRGateConfig":
        """Apply file sections over this config. Raises ValueError/TypeError on bad values."""
        data = data or {}
        unknown = set(data) - set(SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config section(s): {', '.join(sorted(unknown))}")
        return PRGateConfig(
            circuit_breaker=self.circuit_breaker.with_overrides(**(data.get("circuit_breaker") or {})),
            poller=self.poller.with_overrides(**(data.get("poller") or {})),
            quality_gates=self.quality_gates.merged(data.get("quality_gates")),
            merge=self.merge.with_overrides(**(data.get("merge") or {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "circuit_breaker": asdict(self.circuit_breaker),
            "poller": asdict(self.poller),
            "quality_gates": self.quality_gates.to_dict(),
            "merge": asdict(self.merge),
        }


def load_config(path: Optional[Union[str, Path]] = None) -> PRGateConfig:
    """Load config: defaults, then PRGATE_* env vars, then the YAML file.

    A missing file is not an error. A file that cannot be parsed, or that
    holds unknown keys or invalid values, raises ConfigError.
    """
    config_path = Path(path) if path is not None else default_config_path()
    config = PRGateConfig.from_env()

    if not config_path.exists():
        if path is not None:
            raise ConfigError(f"Config file not found: {config_path}", path=str(config_path))
        return config

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}", path=str(config_path)) from e

    if data is None:
        return config
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping", path=str(config_path))

    try:
        config = config.merged(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config in {config_path}: {e}", path=str(config_path)) from e

    logger.debug("config_loaded", extra={"event": "config_loaded", "path": str(config_path)})
    return config
