"""Tests for models.py module."""

import pytest

from prgate.models import (
    CICheckFailure,
    CheckResults,
    CommentSeverity,
    FailureType,
    QualityMetrics,
    ReviewComment,
    StatusCheck,
)


class TestStatusCheck:
    """Tests for StatusCheck."""

    @pytest.mark.parametrize("status,conclusion,failed,pending,passed", [
        ("passed", None, False, False, True),
        ("skipped", None, False, False, True),
        ("failed", None, True, False, False),
        ("completed", "failure", True, False, False),
        ("completed", "success", False, False, True),
        ("running", None, False, True, False),
        ("pending", None, False, True, False),
    ])
    def test_predicates(self, status, conclusion, failed, pending, passed):
        """Test status predicates."""
        check = StatusCheck(name="x", status=status, conclusion=conclusion)

        assert check.is_failed is failed
        assert check.is_pending is pending
        assert check.is_passed is passed

    def test_from_dict_defaults_to_pending(self):
        """Test a check without a status is pending."""
        assert StatusCheck.from_dict({"name": "x"}).is_pending


class TestQualityInputs:
    """Tests for metrics, check results and comments parsing."""

    def test_metrics_from_dict(self):
        """Test nested security counts and numeric coercion."""
        metrics = QualityMetrics.from_dict({
            "code_coverage": "81.5",
            "security_issues": {"critical": 1},
            "style_violations": 2,
        })

        assert metrics.code_coverage == 81.5
        assert metrics.security_issues.critical == 1
        assert metrics.security_issues.high == 0
        assert metrics.style_violations == 2

    def test_check_results_default_to_failed(self):
        """Test missing check flags are treated as not passed."""
        assert CheckResults.from_dict({}).tests_passed is False

    def test_comment_from_dict(self):
        """Test comments parse their severity."""
        comment = ReviewComment.from_dict({"file": "a.py", "line": 3, "comment": "x", "severity": "major"})

        assert comment.severity == CommentSeverity.MAJOR
        assert comment.resolved is False

    def test_comment_unknown_severity(self):
        """Test an unknown severity is rejected."""
        with pytest.raises(ValueError):
            ReviewComment.from_dict({"severity": "blocker"})


class TestCICheckFailure:
    """Tests for CICheckFailure."""

    def test_to_dict_omits_missing_message(self):
        """Test serialization without an error message."""
        data = CICheckFailure(name="test", failure_type=FailureType.TRANSIENT).to_dict()

        assert data == {"name": "test", "failure_type": "transient", "recoverable": True}
