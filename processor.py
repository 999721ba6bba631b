"""
CSV boundary for the ledger engine.

Reads transaction rows, applies them one at a time and reports every
rejected row on an error channel, then exports the account snapshot.
"""

import csv
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, TextIO, Tuple

import structlog
from pydantic import ValidationError

from errors import LedgerError, OutputWriteError, RowDecodeError
from models import AccountSnapshot, TransactionRecord
from services import LedgerEngine

logger = structlog.get_logger()

OUTPUT_HEADER = ["client", "available", "held", "total", "locked"]


@dataclass
class ProcessingSummary:
    rows: int = 0
    applied: int = 0
    rejected: int = 0


def decode_row(row: Dict[Optional[str], object]) -> TransactionRecord:
    """Decode one trimmed CSV row into a record, raising RowDecodeError."""
    if None in row:
        raise RowDecodeError(f"unexpected extra fields {row[None]!r}")
    try:
        return TransactionRecord.model_validate(row)
    except ValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'row'}: {err['msg']}"
            for err in e.errors()
        )
        raise RowDecodeError(reasons) from e


def _trimmed_rows(csv_input: TextIO) -> Iterator[Tuple[int, Dict[Optional[str], object]]]:
    reader = csv.reader(csv_input)
    header = next(reader, None)
    if header is None:
        return
    fields = [name.strip().lower() for name in header]

    for row in reader:
        if not row or all(not value.strip() for value in row):
            continue
        values = [value.strip() for value in row]
        decoded: Dict[Optional[str], object] = dict(zip(fields, values))
        extra = [value for value in values[len(fields):] if value]
        if extra:
            decoded[None] = extra
        yield reader.line_num, decoded


class CSVProcessor:
    """Feeds a CSV stream through a LedgerEngine."""

    def __init__(self, engine: Optional[LedgerEngine] = None, error_prefix: str = "error: "):
        self.engine = engine if engine is not None else LedgerEngine()
        self.error_prefix = error_prefix

    def process(self, csv_input: TextIO, err_output: TextIO) -> ProcessingSummary:
        summary = ProcessingSummary()
        for _, message in self._apply_rows(csv_input, summary):
            err_output.write(f"{self.error_prefix}{message}\n")
        return summary

    def collect(self, csv_input: TextIO) -> Tuple[ProcessingSummary, List[str]]:
        """Like process, but return the error messages instead of writing them."""
        summary = ProcessingSummary()
        errors = [message for _, message in self._apply_rows(csv_input, summary)]
        return summary, errors

    def export_accounts(self, writer: TextIO) -> None:
        """Write the account snapshot as CSV, ordered by client id."""
        try:
            csv_writer = csv.writer(writer, lineterminator="\n")
            csv_writer.writerow(OUTPUT_HEADER)
            for snapshot in self.snapshots():
                csv_writer.writerow([
                    snapshot.client,
                    str(snapshot.available),
                    str(snapshot.held),
                    str(snapshot.total),
                    "true" if snapshot.locked else "false",
                ])
            writer.flush()
        except (OSError, csv.Error) as e:
            logger.error("Failed to write account snapshot", error=str(e))
            raise OutputWriteError(str(e)) from e

    def snapshots(self) -> List[AccountSnapshot]:
        accounts = self.engine.get_accounts()
        return [
            AccountSnapshot.from_account(client_id, accounts[client_id])
            for client_id in sorted(accounts)
        ]

    def _apply_rows(
        self, csv_input: TextIO, summary: ProcessingSummary
    ) -> Iterator[Tuple[int, str]]:
        try:
            for line, row in _trimmed_rows(csv_input):
                summary.rows += 1
                try:
                    self.engine.apply(decode_row(row))
                except LedgerError as e:
                    summary.rejected += 1
                    if isinstance(e, RowDecodeError):
                        logger.info("Row rejected", line=line, error=e.message)
                    yield line, e.message
                else:
                    summary.applied += 1
        except csv.Error as e:
            # The reader does not resume after a malformed row
            summary.rows += 1
            summary.rejected += 1
            logger.warning("CSV stream aborted", error=str(e))
            yield 0, RowDecodeError(str(e)).message

        logger.info(
            "Input processed",
            rows=summary.rows,
            applied=summary.applied,
            rejected=summary.rejected
        )
