"""Tests for errors.py module."""

from prgate.errors import (
    CICheckFailedError,
    CIMaxPollsExceededError,
    CircuitOpenError,
    CITerminalFailureError,
    CITimeoutError,
    ConfigError,
    ErrorCodes,
    ErrorSeverity,
    PRGateError,
    PRMergeError,
    QualityGateFailedError,
)


class TestErrorMessages:
    """Tests for error wording and payloads."""

    def test_circuit_open(self):
        """Test CircuitOpenError carries the failure count."""
        err = CircuitOpenError(3, 1234.0)

        assert str(err) == "CI circuit breaker is open after 3 consecutive failures"
        assert err.failures == 3
        assert err.last_failure_time == 1234.0
        assert err.code == ErrorCodes.CIRCUIT_OPEN

    def test_terminal_failure(self):
        """Test terminal failures name the check and message."""
        err = CITerminalFailureError(7, "lint", "invalid token")

        assert str(err) == "Terminal CI failure detected for PR #7: lint - invalid token"
        assert err.severity == ErrorSeverity.CRITICAL

    def test_terminal_failure_without_message(self):
        """Test the message suffix is omitted when there is no error text."""
        assert str(CITerminalFailureError(7, "lint")) == "Terminal CI failure detected for PR #7: lint"

    def test_timeout(self):
        """Test CITimeoutError wording."""
        assert str(CITimeoutError(5, 3000)) == "CI checks timed out for PR #5 after 3000ms"

    def test_all_are_prgate_errors(self):
        """Test every error shares the base class."""
        errors = [
            CICheckFailedError(1, ["test"]),
            CIMaxPollsExceededError(1, 60),
            QualityGateFailedError(1, ["code_coverage"]),
            PRMergeError(1, "conflict"),
            ConfigError("bad file", path="/tmp/x.yaml"),
        ]

        for err in errors:
            assert isinstance(err, PRGateError)

    def test_to_dict(self):
        """Test serialization of an error."""
        data = PRMergeError(9, "not mergeable").to_dict()

        assert data["type"] == "PRMergeError"
        assert data["code"] == ErrorCodes.MERGE_FAILED
        assert data["context"] == {"pr_number": 9, "reason": "not mergeable"}
        assert data["severity"] == "high"
