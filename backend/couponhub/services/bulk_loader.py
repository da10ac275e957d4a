from __future__ import annotations

import csv
import io
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from couponhub.core import metrics
from couponhub.core.errors import DuplicateCode, UploadRejected
from couponhub.services.store import CouponStore

logger = logging.getLogger(__name__)

COUPON_CODE_RE = re.compile(r"[A-Za-z0-9_-]+")

Row = str | Sequence[object]


@dataclass
class ReloadReport:
    total_processed: int = 0
    successfully_added: int = 0
    error_details: list[str] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.error_details)

    @property
    def message(self) -> str:
        message = f"Successfully uploaded {self.successfully_added} coupon codes"
        if self.errors:
            message += f" with {self.errors} errors"
        return message


def _first_cell(row: Row) -> object:
    if isinstance(row, str):
        return row
    return row[0] if len(row) else ""


def parse_csv_rows(content: bytes) -> list[list[str]]:
    """Decode and split an uploaded CSV, dropping blank lines and trimming cells."""
    try:
        text = content.decode("utf-8-sig")
        reader = csv.reader(io.StringIO(text, newline=""))
        rows = [[cell.strip() for cell in record] for record in reader]
    except (UnicodeDecodeError, csv.Error) as exc:
        logger.info("coupon_csv_unparseable", extra={"error": str(exc)})
        raise UploadRejected(
            "Invalid CSV format", "Failed to parse CSV file. Please ensure it's properly formatted."
        ) from exc
    rows = [row for row in rows if any(row)]
    if not rows:
        raise UploadRejected("Empty file", "The CSV file appears to be empty")
    return rows


class BulkLoader:
    """Replaces the whole pool, and with it every distribution, from a list of codes."""

    def __init__(self, store: CouponStore) -> None:
        self.store = store

    async def reload(self, rows: Iterable[Row]) -> ReloadReport:
        rows = list(rows)
        report = ReloadReport(total_processed=len(rows))

        async with self.store.lock:
            await self.store.reset()
            for idx, row in enumerate(rows, start=1):
                candidate = _first_cell(row)
                if not isinstance(candidate, str):
                    report.error_details.append(f"Row {idx}: Invalid coupon code")
                    continue
                code = candidate.strip()
                if not code:
                    report.error_details.append(f"Row {idx}: Empty coupon code")
                    continue
                if not COUPON_CODE_RE.fullmatch(code):
                    report.error_details.append(f'Row {idx}: Invalid characters in coupon code "{code}"')
                    continue
                try:
                    await self.store.create_coupon(code)
                except DuplicateCode:
                    report.error_details.append(f'Row {idx}: Duplicate coupon code "{code}"')
                    continue
                report.successfully_added += 1

        metrics.record_pool_reload()
        logger.info(
            "coupon_pool_reloaded",
            extra={
                "total_processed": report.total_processed,
                "successfully_added": report.successfully_added,
                "errors": report.errors,
            },
        )
        return report
