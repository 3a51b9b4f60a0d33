"""Failure classification for CI checks.

Decides whether a failed check is worth retrying:

- terminal: configuration, auth/permission, syntax/parse and missing
  dependency errors. Checked first against both the check name and the
  error text, so an auth failure inside a "test" check is still terminal.
- transient: checks that are flaky by nature (test, lint, build, ...) or
  errors that look like infrastructure trouble (timeouts, rate limits).
- persistent: everything else. Needs a human to look at it.
"""

from __future__ import annotations

from typing import Iterable, Optional

from prgate.config.defaults import (
    TERMINAL_PATTERNS,
    TRANSIENT_ERROR_PATTERNS,
    TRANSIENT_NAME_PATTERNS,
)
from prgate.models import CICheckFailure, FailureType, StatusCheck


class FailureClassifier:
    """Pattern-based classifier. Pattern sets can be overridden per instance."""

    def __init__(
        self,
        terminal_patterns: Optional[Iterable[str]] = None,
        transient_name_patterns: Optional[Iterable[str]] = None,
        transient_error_patterns: Optional[Iterable[str]] = None,
    ):
        self.terminal_patterns = tuple(
            p.lower() for p in (terminal_patterns if terminal_patterns is not None else TERMINAL_PATTERNS)
        )
        self.transient_name_patterns = tuple(
            p.lower()
            for p in (
                transient_name_patterns if transient_name_patterns is not None else TRANSIENT_NAME_PATTERNS
            )
        )
        self.transient_error_patterns = tuple(
            p.lower()
            for p in (
                transient_error_patterns if transient_error_patterns is not None else TRANSIENT_ERROR_PATTERNS
            )
        )

    def determine_failure_type(self, check_name: str, error_message: Optional[str] = None) -> FailureType:
        """Determine the failure type from a check name and optional error text."""
        lower_name = check_name.lower()
        lower_error = (error_message or "").lower()

        for pattern in self.terminal_patterns:
            if pattern in lower_name or pattern in lower_error:
                return FailureType.TERMINAL

        for pattern in self.transient_name_patterns:
            if pattern in lower_name:
                return FailureType.TRANSIENT

        for pattern in self.transient_error_patterns:
            if pattern in lower_error:
                return FailureType.TRANSIENT

        return FailureType.PERSISTENT

    def classify(self, check: StatusCheck, error_message: Optional[str] = None) -> CICheckFailure:
        """Classify a failed status check."""
        return CICheckFailure(
            name=check.name,
            failure_type=self.determine_failure_type(check.name, error_message),
            error_message=error_message,
        )


_default_classifier = FailureClassifier()


def determine_failure_type(check_name: str, error_message: Optional[str] = None) -> FailureType:
    """Classify with the default pattern sets."""
    return _default_classifier.determine_failure_type(check_name, error_message)


def classify_failure(check: StatusCheck, error_message: Optional[str] = None) -> CICheckFailure:
    """Classify a failed status check with the default pattern sets."""
    return _default_classifier.classify(check, error_message)
