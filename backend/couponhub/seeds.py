import logging

from couponhub.services.store import CouponStore

logger = logging.getLogger(__name__)

PRESET_COUPON_CODES: tuple[str, ...] = (
    "SAVE10",
    "WELCOME20",
    "FIRST15",
    "SPECIAL25",
    "BONUS30",
    "DEAL40",
    "OFFER35",
    "DISCOUNT50",
    "PROMO12",
    "GIFT18",
    "LUCKY7",
    "MEGA60",
    "SUPER45",
    "ULTRA20",
    "PREMIUM25",
    "ELITE30",
    "GOLD40",
    "SILVER15",
    "BRONZE10",
    "DIAMOND50",
    "RUBY35",
    "EMERALD25",
    "SAPPHIRE20",
    "PEARL15",
    "CRYSTAL30",
)


async def seed(store: CouponStore, codes: tuple[str, ...] = PRESET_COUPON_CODES) -> int:
    """Fill an empty pool with the preset codes. Returns how many were added."""
    async with store.lock:
        existing = await store.list_coupons()
        if existing:
            logger.info("coupon_seed_skipped", extra={"existing": len(existing)})
            return 0
        for code in codes:
            await store.create_coupon(code)
    logger.info("coupon_seed_applied", extra={"added": len(codes)})
    return len(codes)
