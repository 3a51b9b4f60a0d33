#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from prgate import __version__
from prgate.cli.formatting.output import ConsoleOutput
from prgate.errors import PRGateError


def _repo_root() -> Path:
    return Path.cwd().resolve()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prgate",
        description="prgate - CI polling and merge readiness for automated PR review",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--config", help="Config file (default: ~/.prgate/config.yaml)")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    classify_p = subparsers.add_parser("classify", help="Classify a failed CI check")
    classify_p.add_argument("name", help="Check name")
    classify_p.add_argument("--error", help="Error message reported by the check")

    evaluate_p = subparsers.add_parser("evaluate", help="Evaluate quality gates")
    evaluate_p.add_argument("--metrics", required=True, help="Quality metrics JSON file")
    evaluate_p.add_argument("--checks", required=True, help="Check results JSON file")
    evaluate_p.add_argument("--comments", help="Review comments JSON file")
    evaluate_p.add_argument("--json", action="store_true", help="Output JSON")

    readiness_p = subparsers.add_parser("readiness", help="Check whether a PR can be merged")
    readiness_p.add_argument("pr", type=int, help="PR number")
    readiness_p.add_argument("--snapshot", required=True, help="VCS snapshot JSON file")
    readiness_p.add_argument("--metrics", required=True, help="Quality metrics JSON file")
    readiness_p.add_argument("--checks", required=True, help="Check results JSON file")
    readiness_p.add_argument("--comments", help="Review comments JSON file")
    readiness_p.add_argument("--json", action="store_true", help="Output JSON")

    squash_p = subparsers.add_parser("squash-message", help="Generate a squash merge commit message")
    squash_p.add_argument("--title", required=True, help="PR title")
    squash_p.add_argument("--number", type=int, required=True, help="PR number")
    squash_p.add_argument("--issue", type=int, help="Issue closed by the PR")
    squash_p.add_argument("--summary", help="Summary paragraph")

    poll_p = subparsers.add_parser("poll", help="Poll CI status from a snapshot")
    poll_p.add_argument("pr", type=int, help="PR number")
    poll_p.add_argument("--snapshot", required=True, help="VCS snapshot JSON file")
    poll_p.add_argument("--timeout-ms", type=int, help="Overall deadline in milliseconds")
    poll_p.add_argument("--json", action="store_true", help="Output JSON")

    subparsers.add_parser("version", help="Show version")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    load_dotenv(_repo_root() / ".env")

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("prgate").setLevel(logging.DEBUG if args.verbose else logging.WARNING)

    if args.command is None:
        parser.print_help()
        return 0

    from prgate.cli.commands import classify, evaluate, poll, readiness, squash_message

    console = ConsoleOutput()
    try:
        if args.command == "classify":
            return classify.run(args.name, args.error, console=console)
        elif args.command == "evaluate":
            return evaluate.run(
                metrics=args.metrics,
                checks=args.checks,
                comments=args.comments,
                config_path=args.config,
                json_output=args.json,
                console=console,
            )
        elif args.command == "readiness":
            return asyncio.run(readiness.run(
                pr_number=args.pr,
                snapshot=args.snapshot,
                metrics=args.metrics,
                checks=args.checks,
                comments=args.comments,
                config_path=args.config,
                json_output=args.json,
                console=console,
            ))
        elif args.command == "squash-message":
            return squash_message.run(
                title=args.title,
                number=args.number,
                issue=args.issue,
                summary=args.summary,
                console=console,
            )
        elif args.command == "poll":
            return asyncio.run(poll.run(
                pr_number=args.pr,
                snapshot=args.snapshot,
                config_path=args.config,
                timeout_ms=args.timeout_ms,
                json_output=args.json,
                console=console,
            ))
        elif args.command == "version":
            console.print(f"prgate {__version__}", markup=False)
            return 0
    except (PRGateError, OSError, ValueError, LookupError) as e:
        console.print_error(str(e))
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
