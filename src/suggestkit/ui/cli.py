# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from suggestkit.adapters.submission import SubmissionError, load_submission
from suggestkit.app import apply_suggestion_batch, build_entity_store, validate_suggestion_batch
from suggestkit.config import ConfigurationError, configure_logging, get_engine_config
from suggestkit.domain.engine import CancelToken
from suggestkit.domain.errors import EngineError
from suggestkit.domain.model import ErrorPolicy

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from suggestkit.domain.engine import BatchSubmission

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

_CANCEL_TOKEN = CancelToken()


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply AI design suggestions")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    apply = subparsers.add_parser("apply", help="Apply the accepted suggestions of a batch")
    apply.add_argument("submission", type=Path, help="Path to the submission JSON document")
    apply.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate, order and rewrite without calling the store",
    )
    apply.add_argument(
        "--error-policy",
        choices=[policy.value for policy in ErrorPolicy],
        help="Override the submission's error policy",
    )
    apply.add_argument(
        "--store",
        choices=["rest", "sqlite"],
        default="rest",
        help="Backing store to apply to (default: %(default)s)",
    )
    apply.add_argument(
        "--database-uri",
        type=str,
        help="Database URI for the sqlite store (defaults to DATABASE_URI or the data dir)",
    )
    apply.add_argument(
        "--fan-out",
        type=int,
        help="Maximum concurrent store calls per wave (defaults to config)",
    )
    apply.add_argument(
        "--rollback-on-failure",
        action="store_true",
        help="Roll the whole batch back when any suggestion failed",
    )

    validate = subparsers.add_parser("validate", help="Check a batch and print its wave plan")
    validate.add_argument("submission", type=Path, help="Path to the submission JSON document")

    return parser.parse_args(list(argv))


def _apply_overrides(submission: BatchSubmission, args: argparse.Namespace) -> BatchSubmission:
    options = submission.options
    if args.dry_run:
        options = replace(options, dry_run=True)
    if args.error_policy is not None:
        options = replace(options, error_policy=ErrorPolicy(args.error_policy))
    return replace(submission, options=options)


def _emit(document: dict[str, object]) -> None:
    print(json.dumps(document, indent=2))


def _run_validate(args: argparse.Namespace) -> int:
    submission = load_submission(args.submission)
    schedule = validate_suggestion_batch(submission)
    _emit(
        {
            "batchId": submission.batch_id,
            "waves": [list(wave) for wave in schedule.waves],
            "blocked": list(schedule.blocked),
            "warnings": list(schedule.warnings),
        }
    )
    return EXIT_OK


def _run_apply(args: argparse.Namespace) -> int:
    if args.fan_out is not None and args.fan_out < 1:
        raise ValueError("--fan-out must be at least 1")
    engine_config = get_engine_config()
    submission = _apply_overrides(
        load_submission(args.submission, default_error_policy=engine_config.default_error_policy),
        args,
    )
    store = build_entity_store(args.store, database_uri=args.database_uri)
    session = apply_suggestion_batch(
        submission,
        store=store,
        engine_config=engine_config,
        fan_out=args.fan_out,
        cancel_token=_CANCEL_TOKEN,
    )
    result = session.result
    if result is None:
        raise RuntimeError(f"Batch {submission.batch_id} produced no result")
    document = result.to_dict()
    if args.rollback_on_failure and result.failed and session.rollback_available:
        log.warning("Rolling back batch %s after failures", submission.batch_id)
        document["rollback"] = session.rollback().to_dict()
    _emit(document)
    return EXIT_OK if result.succeeded else EXIT_FAILED


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "validate":
            exit_code = _run_validate(parsed_args)
        elif parsed_args.command == "apply":
            exit_code = _run_apply(parsed_args)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except EngineError as exc:
        log.error("Batch rejected: %s", exc)  # noqa: TRY400
        _emit({"error": exc.to_dict()})
        sys.exit(EXIT_INVALID)
    except (SubmissionError, ValueError):
        log.exception("CLI validation error")
        sys.exit(EXIT_INVALID)
    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(EXIT_FAILED)
    except Exception:
        log.exception("Fatal error while applying suggestions")
        sys.exit(EXIT_FAILED)
    sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Cancel at the next wave boundary on the first Ctrl+C, exit on the second."""
    if _CANCEL_TOKEN.cancelled:
        log.info("Closed by user (Ctrl+C)")
        sys.exit(0)
    log.info("Cancelling after the current wave (Ctrl+C again to quit)")
    _CANCEL_TOKEN.cancel()


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
