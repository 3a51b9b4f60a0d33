"""Default configuration values for prgate.

This module centralizes the hard-coded numbers (thresholds, intervals,
pattern sets) into a single location. All modules should import these
constants instead of hard-coding values.

Usage:
    from prgate.config.defaults import (
        CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        POLLER_INITIAL_INTERVAL_MS,
        QUALITY_GATE_COVERAGE_THRESHOLD,
    )
"""

from __future__ import annotations

# =============================================================================
# Circuit Breaker Defaults
# =============================================================================

CIRCUIT_BREAKER_FAILURE_THRESHOLD = 3
CIRCUIT_BREAKER_SUCCESS_THRESHOLD = 2
CIRCUIT_BREAKER_RESET_TIMEOUT_MS = 300_000  # 5 minutes in OPEN before HALF_OPEN
CIRCUIT_BREAKER_FAILURE_WINDOW_MS = 600_000  # 10 minutes


# =============================================================================
# Poller Defaults
# =============================================================================

POLLER_INITIAL_INTERVAL_MS = 10_000
POLLER_MAX_INTERVAL_MS = 60_000
POLLER_BACKOFF_MULTIPLIER = 1.5
POLLER_MAX_JITTER_MS = 2_000
POLLER_MAX_POLLS = 60
POLLER_FAIL_FAST_ON_TERMINAL = True

# Extra multiplier applied when the last poll failed or errored
POLLER_FAILURE_BACKOFF_FACTOR = 1.5


# =============================================================================
# Quality Gate Defaults
# =============================================================================

QUALITY_GATE_COVERAGE_THRESHOLD = 80.0
QUALITY_GATE_NEW_LINES_COVERAGE = 90.0
QUALITY_GATE_MAX_COMPLEXITY = 10.0


# =============================================================================
# Merge Defaults
# =============================================================================

MERGE_STRATEGY = "squash"
MERGE_STRATEGIES = ("merge", "squash", "rebase")
MERGE_DELETE_BRANCH_ON_MERGE = True


# =============================================================================
# Failure Classification Patterns
# =============================================================================

# Matched against both check name and error text; these always win.
TERMINAL_PATTERNS = (
    "configuration",
    "config-validation",
    "config error",
    "config_error",
    "unauthorized",
    "forbidden",
    "invalid token",
    "permission denied",
    "access denied",
    "syntax error",
    "syntax-error",
    "syntax-check",
    "parse error",
    "parse-error",
    "invalid yaml",
    "invalid json",
    "missing required",
    "dependency not found",
    "module not found",
)

# Matched against the check name only
TRANSIENT_NAME_PATTERNS = (
    "test",
    "lint",
    "build",
    "compile",
    "type-check",
    "format",
    "coverage",
)

# Matched against the error text only
TRANSIENT_ERROR_PATTERNS = (
    "timeout",
    "rate limit",
    "network error",
    "connection refused",
    "temporary",
    "retry",
    "flaky",
)


# =============================================================================
# Config File
# =============================================================================

CONFIG_DIR_NAME = ".prgate"
CONFIG_FILE_NAME = "config.yaml"
