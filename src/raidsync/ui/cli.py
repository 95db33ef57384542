from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from raidsync.app import reconcile_content, resync_content, store_overview, watch_content
from raidsync.config import configure_logging
from raidsync.domain.model import ContentType

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from raidsync.domain.reconciliation import CycleResult

log = logging.getLogger(__name__)


def _parse_content_type(value: str) -> ContentType:
    normalized = value.strip().lower().replace("-", "_")
    try:
        return ContentType(normalized)
    except ValueError:
        choices = ", ".join(ct.value for ct in ContentType)
        raise argparse.ArgumentTypeError(
            f"Unknown content type {value!r} (choose from {choices})"
        ) from None


def _add_type_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--type",
        dest="content_types",
        type=_parse_content_type,
        action="append",
        help="Content type to process (repeatable; defaults to all)",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile wiki content with upstream feeds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Run one reconciliation cycle")
    _add_type_option(reconcile)

    resync = subparsers.add_parser("resync", help="Clear local content and re-fetch it")
    _add_type_option(resync)

    watch = subparsers.add_parser("watch", help="Reconcile on the configured schedule")
    watch.add_argument(
        "--max-cycles",
        type=int,
        help="Stop after this many cycles per content type",
    )

    subparsers.add_parser("status", help="Show stored versions and entity counts")

    return parser.parse_args(list(argv))


def _exit_code(results: dict[ContentType, CycleResult]) -> int:
    return 1 if any(result.outcome.failed for result in results.values()) else 0


def _print_results(results: dict[ContentType, CycleResult]) -> None:
    for content_type, result in results.items():
        line = f"{content_type}: {result.outcome}"
        if result.version is not None:
            line += f" (version {result.version}, {len(result.changes)} changes)"
        if result.error:
            line += f" - {result.error}"
        print(line)  # noqa: T201


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        if getattr(parsed_args, "max_cycles", None) is not None and parsed_args.max_cycles < 1:
            raise ValueError("--max-cycles must be at least 1")  # noqa: TRY301
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    exit_code = 0
    try:
        if parsed_args.command == "reconcile":
            results = reconcile_content(parsed_args.content_types)
            _print_results(results)
            exit_code = _exit_code(results)
        elif parsed_args.command == "resync":
            results = resync_content(parsed_args.content_types)
            _print_results(results)
            exit_code = _exit_code(results)
        elif parsed_args.command == "watch":
            watch_content(max_cycles=parsed_args.max_cycles)
        elif parsed_args.command == "status":
            for row in store_overview():
                synced = row.last_applied_at.isoformat() if row.last_applied_at else "never"
                print(  # noqa: T201
                    f"{row.content_type}: version {row.version}, "
                    f"{row.entity_count} entities, last applied {synced}"
                )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during reconciliation")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
