from __future__ import annotations

import logging
from pathlib import Path

from fastapi import UploadFile

from couponhub.core.config import settings
from couponhub.core.errors import UploadRejected

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = ("text/csv", "application/csv")


async def read_csv_upload(file: UploadFile | None, max_bytes: int | None = None) -> bytes:
    """Validate an uploaded coupon list and return its raw bytes."""
    if file is None or not file.filename:
        raise UploadRejected("No file uploaded", "Please select a CSV file to upload")

    suffix = Path(file.filename).suffix.lower()
    if suffix != ".csv" and (file.content_type or "").lower() not in CSV_CONTENT_TYPES:
        raise UploadRejected("Only CSV files are allowed", "Please upload a file with a .csv extension")

    limit = settings.upload_max_bytes if max_bytes is None else max_bytes
    content = await file.read(limit + 1)
    if len(content) > limit:
        logger.info("coupon_csv_too_large", extra={"upload_filename": file.filename, "limit": limit})
        raise UploadRejected("File too large", f"CSV files are limited to {limit // (1024 * 1024) or 1} MB")
    return content
