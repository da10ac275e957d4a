from couponhub.db.base import Base  # noqa: F401
from couponhub.models.coupon import Coupon, CouponDistribution  # noqa: F401

__all__ = [
    "Base",
    "Coupon",
    "CouponDistribution",
]
