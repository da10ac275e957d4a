from __future__ import annotations

from typing import Any

from fastapi import status


class CouponError(Exception):
    """Base class for errors that map onto the public error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"
    default_message: str | None = None

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message or self.error)


class InvalidMobileNumber(CouponError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid mobile number"
    default_message = (
        "Invalid mobile number. Supported formats: +919996275888, 919996275888, 9996275888, "
        "or international numbers"
    )


class PoolExhausted(CouponError):
    status_code = status.HTTP_410_GONE
    error = "No coupons available"
    default_message = "All coupon codes have been distributed. Please contact support."


class DuplicateMobile(CouponError):
    status_code = status.HTTP_409_CONFLICT
    error = "Mobile number already has a coupon"

    def __init__(self, mobile_number: str) -> None:
        self.mobile_number = mobile_number
        super().__init__("A distribution already exists for this mobile number")


class DuplicateCode(CouponError):
    status_code = status.HTTP_409_CONFLICT
    error = "Duplicate coupon code"

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f'Coupon code "{code}" already exists')


class CouponUnavailable(CouponError):
    status_code = status.HTTP_409_CONFLICT
    error = "Coupon unavailable"

    def __init__(self, coupon_id: int) -> None:
        self.coupon_id = coupon_id
        super().__init__(f"Coupon {coupon_id} was claimed by another request")


class NotFound(CouponError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class RateLimited(CouponError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Rate limit exceeded"
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, *, window_seconds: int) -> None:
        self.retry_after = max(1, int(retry_after))
        self.window_seconds = int(window_seconds)
        super().__init__()


class StorageFailure(CouponError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"


class UploadRejected(CouponError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid upload"

    def __init__(self, error: str, message: str) -> None:
        self.error = error
        super().__init__(message)
