"""
prgate - CI polling and merge-readiness decisions for automated PR review.

- circuit_breaker: stop polling a CI system that keeps failing
- poller: poll CI status with backoff, jitter and failure classification
- quality_gates: required/recommended gate evaluation
- merge: merge readiness verdict, detailed report, squash message
"""

from __future__ import annotations

__version__ = "0.1.0"

from prgate.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from prgate.config.loader import PRGateConfig, load_config
from prgate.errors import (
    CICheckFailedError,
    CIMaxPollsExceededError,
    CircuitOpenError,
    CITerminalFailureError,
    CITimeoutError,
    ConfigError,
    PRGateError,
    PRMergeError,
    QualityGateFailedError,
)
from prgate.failure_classifier import FailureClassifier, classify_failure, determine_failure_type
from prgate.merge import MergeConfig, MergeReadinessAggregator
from prgate.models import FailureType
from prgate.poller import (
    IntelligentPoller,
    PollerConfig,
    PollReason,
    PollResult,
    create_status_checker,
)
from prgate.quality_gates import QualityGateConfig, QualityGateEvaluator
from prgate.vcs import SnapshotVCS, VCSOperations

__all__ = [
    "__version__",
    "CICheckFailedError",
    "CIMaxPollsExceededError",
    "CITerminalFailureError",
    "CITimeoutError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "ConfigError",
    "FailureClassifier",
    "FailureType",
    "IntelligentPoller",
    "MergeConfig",
    "MergeReadinessAggregator",
    "PRGateConfig",
    "PRGateError",
    "PRMergeError",
    "PollReason",
    "PollResult",
    "PollerConfig",
    "QualityGateConfig",
    "QualityGateEvaluator",
    "QualityGateFailedError",
    "SnapshotVCS",
    "VCSOperations",
    "classify_failure",
    "create_status_checker",
    "determine_failure_type",
    "load_config",
]
