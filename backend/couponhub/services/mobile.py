from __future__ import annotations

import re

from couponhub.core.errors import InvalidMobileNumber

_STRIP_RE = re.compile(r"[^\d+]")
_INDIAN_LOCAL_RE = re.compile(r"[6-9]\d{9}")
_INTERNATIONAL_PLUS_RE = re.compile(r"[1-9]\d{7,17}")
_INTERNATIONAL_BARE_RE = re.compile(r"[1-9]\d{7,14}")

INDIA_PREFIX = "91"


def _clean(raw: str) -> str:
    return _STRIP_RE.sub("", raw.strip())


def _canonical(cleaned: str) -> str | None:
    if cleaned.startswith("+91"):
        local = cleaned[3:]
        return INDIA_PREFIX + local if _INDIAN_LOCAL_RE.fullmatch(local) else None

    if cleaned.startswith(INDIA_PREFIX) and len(cleaned) == 12:
        return cleaned if _INDIAN_LOCAL_RE.fullmatch(cleaned[2:]) else None

    if len(cleaned) == 10:
        return INDIA_PREFIX + cleaned if _INDIAN_LOCAL_RE.fullmatch(cleaned) else None

    if cleaned.startswith("+"):
        digits = cleaned[1:]
        return digits if _INTERNATIONAL_PLUS_RE.fullmatch(digits) else None

    return cleaned if _INTERNATIONAL_BARE_RE.fullmatch(cleaned) else None


def normalize_mobile_number(raw: str) -> str:
    """
    Turn user input into the canonical digit string used as the allocation key.

    Indian numbers (``+91``/``91`` prefixed or 10 local digits starting 6-9) become
    ``91`` + local digits. Anything else is accepted as a generic international number
    by digit count, with any leading ``+`` dropped.

    Raises:
        InvalidMobileNumber: the input fits none of the accepted shapes.
    """
    cleaned = _clean(raw or "")
    canonical = _canonical(cleaned)
    if canonical is None:
        raise InvalidMobileNumber(
            details=[
                {
                    "field": "mobileNumber",
                    "message": InvalidMobileNumber.default_message,
                    "input": raw,
                }
            ]
        )
    return canonical


def is_valid_mobile_number(raw: str) -> bool:
    return _canonical(_clean(raw or "")) is not None


def mask_mobile(mobile: str | None) -> str | None:
    """Mask all but the last two digits for logs."""
    raw = (mobile or "").strip()
    if len(raw) <= 4:
        return "*" * len(raw) if raw else mobile
    return f"{'*' * (len(raw) - 2)}{raw[-2:]}"
