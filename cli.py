"""
Command-line entry point.

    ledger-engine transactions.csv > accounts.csv

Rejected rows are reported on stderr, one line each; the account snapshot
is written to stdout once the whole input has been read.
"""

import argparse
import sys

import structlog

from config import get_settings, get_settings_for_environment
from errors import OutputWriteError
from logging_config import configure_logging
from processor import CSVProcessor

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-engine",
        description="Apply a CSV stream of transactions and print client balances",
    )
    parser.add_argument("path", help="Path to the transactions CSV")
    parser.add_argument(
        "--env",
        choices=["development", "production", "testing"],
        default=None,
        help="Settings preset (defaults to environment variables)",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser


def main(argv=None, stdout=None, stderr=None) -> int:
    stdout = stdout if stdout is not None else sys.stdout
    stderr = stderr if stderr is not None else sys.stderr

    args = build_parser().parse_args(argv)

    settings = get_settings_for_environment(args.env) if args.env else get_settings()
    if args.log_level:
        settings = settings.model_copy(update={"log_level": args.log_level})
    configure_logging(settings)

    processor = CSVProcessor(error_prefix=settings.error_prefix)

    try:
        with open(args.path, newline="", encoding="utf-8-sig") as csv_input:
            summary = processor.process(csv_input, stderr)
    except OSError as e:
        stderr.write(f"{settings.error_prefix}cannot read {args.path}: {e.strerror or e}\n")
        return 1
    except UnicodeDecodeError as e:
        stderr.write(f"{settings.error_prefix}{args.path} is not valid UTF-8: {e.reason}\n")
        return 1

    logger.info(
        "Processing finished",
        path=args.path,
        rows=summary.rows,
        applied=summary.applied,
        rejected=summary.rejected
    )

    try:
        processor.export_accounts(stdout)
    except OutputWriteError as e:
        stderr.write(f"{settings.error_prefix}{e.message}\n")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
