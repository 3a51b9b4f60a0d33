"""Tests for the prgate CLI."""

import json

import pytest

from prgate import __version__
from prgate.cli.main import build_parser, main


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Input files for CLI runs, with an empty config file to isolate from ~/.prgate."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("")
    (tmp_path / "checks.json").write_text(json.dumps({
        "ci_passed": True,
        "tests_passed": True,
        "lint_passed": True,
        "security_scan_passed": True,
        "build_passed": True,
    }))
    (tmp_path / "good.json").write_text(json.dumps({
        "code_coverage": 90,
        "new_lines_coverage": 95,
        "complexity_score": 4,
        "security_issues": {"critical": 0, "high": 0},
        "style_violations": 0,
    }))
    (tmp_path / "low.json").write_text(json.dumps({
        "code_coverage": 75,
        "new_lines_coverage": 95,
        "complexity_score": 4,
    }))
    (tmp_path / "comments.json").write_text(json.dumps([
        {"file": "a.py", "line": 3, "comment": "SQL injection", "severity": "critical"},
    ]))
    (tmp_path / "snapshot.json").write_text(json.dumps({"pull_requests": {
        "42": {
            "mergeable": True,
            "mergeable_state": "CLEAN",
            "reviews": [],
            "status_check_rollup": [{"name": "test", "status": "passed"}],
        },
        "43": {
            "mergeable": True,
            "mergeable_state": "CLEAN",
            "reviews": [{"author": "alice", "state": "CHANGES_REQUESTED", "submitted_at": "2024-01-01T00:00:00Z"}],
            "status_check_rollup": [{"name": "config-validation", "status": "failed"}],
        },
    }}))
    return tmp_path


class TestParser:
    """Tests for argument parsing."""

    def test_subcommands(self):
        """Test every subcommand parses."""
        parser = build_parser()

        assert parser.parse_args(["classify", "lint"]).command == "classify"
        assert parser.parse_args(["readiness", "42", "--snapshot", "s", "--metrics", "m", "--checks", "c"]).pr == 42
        assert parser.parse_args(["squash-message", "--title", "t", "--number", "1"]).issue is None
        assert parser.parse_args(["poll", "1", "--snapshot", "s", "--timeout-ms", "100"]).timeout_ms == 100

    def test_required_options(self):
        """Test evaluate needs metrics and checks."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["evaluate", "--metrics", "m"])


class TestCommands:
    """Tests for running commands through main()."""

    def test_version(self, capsys):
        """Test the version command."""
        assert main(["version"]) == 0
        assert f"prgate {__version__}" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        """Test running without a command shows usage."""
        assert main([]) == 0
        assert "usage: prgate" in capsys.readouterr().out

    def test_classify(self, capsys):
        """Test classify prints the failure type."""
        assert main(["classify", "lint", "--error", "invalid token"]) == 0
        out = capsys.readouterr().out
        assert "lint: terminal" in out

    def test_evaluate_pass(self, workspace, capsys):
        """Test evaluate exits 0 when gates pass."""
        code = main(["--config", "config.yaml", "evaluate", "--metrics", "good.json", "--checks", "checks.json"])

        assert code == 0
        assert "All required quality gates passed" in capsys.readouterr().out

    def test_evaluate_fail_json(self, workspace, capsys):
        """Test evaluate --json output and exit code 1 on failure."""
        code = main([
            "--config", "config.yaml", "evaluate",
            "--metrics", "low.json", "--checks", "checks.json", "--comments", "comments.json", "--json",
        ])

        assert code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["passed"] is False
        assert data["failures"] == [
            "Critical review issues found: 1",
            "Code coverage 75% is below required 80%",
        ]

    def test_readiness_ready(self, workspace, capsys):
        """Test readiness exits 0 for a mergeable PR."""
        code = main([
            "--config", "config.yaml", "readiness", "42",
            "--snapshot", "snapshot.json", "--metrics", "good.json", "--checks", "checks.json",
        ])

        assert code == 0
        assert "PR #42 is ready to merge" in capsys.readouterr().out

    def test_readiness_blocked_json(self, workspace, capsys):
        """Test readiness lists blocking reasons and exits 1."""
        code = main([
            "--config", "config.yaml", "readiness", "43",
            "--snapshot", "snapshot.json", "--metrics", "low.json", "--checks", "checks.json", "--json",
        ])

        assert code == 1
        data = json.loads(capsys.readouterr().out)
        assert data["can_merge"] is False
        assert data["blocking_reasons"] == ["Quality gates failed", "1 blocking review(s) requesting changes"]
        assert data["blocking_reviews"] == ["alice"]

    def test_squash_message(self, capsys):
        """Test the squash message output."""
        code = main(["squash-message", "--title", "Add poller", "--number", "12", "--issue", "3"])

        assert code == 0
        assert capsys.readouterr().out.splitlines() == ["Add poller (#12)", "", "Closes #3"]

    def test_poll_success(self, workspace, capsys):
        """Test polling a PR whose checks already passed."""
        code = main(["--config", "config.yaml", "poll", "42", "--snapshot", "snapshot.json", "--json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["success"] is True
        assert data["poll_count"] == 1

    def test_poll_terminal(self, workspace, capsys):
        """Test polling stops on a terminal failure."""
        code = main(["--config", "config.yaml", "poll", "43", "--snapshot", "snapshot.json"])

        assert code == 1
        assert "This failure cannot be auto-retried" in capsys.readouterr().out

    def test_missing_input_file(self, workspace, capsys):
        """Test unreadable inputs exit 2 with an error."""
        code = main(["--config", "config.yaml", "evaluate", "--metrics", "missing.json", "--checks", "checks.json"])

        assert code == 2
        assert "Error:" in capsys.readouterr().out

    def test_invalid_config(self, workspace, capsys):
        """Test an invalid config file exits 2."""
        (workspace / "bad.yaml").write_text("merge:\n  strategy: octopus\n")

        code = main(["--config", "bad.yaml", "evaluate", "--metrics", "good.json", "--checks", "checks.json"])

        assert code == 2
