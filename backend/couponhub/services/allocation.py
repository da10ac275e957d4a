from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from couponhub.core import metrics
from couponhub.core.errors import (
    CouponUnavailable,
    DuplicateMobile,
    InvalidMobileNumber,
    NotFound,
    PoolExhausted,
    StorageFailure,
)
from couponhub.services.mobile import mask_mobile, normalize_mobile_number
from couponhub.services.store import CouponStore, DistributionWithCoupon

logger = logging.getLogger(__name__)

TEST_MOBILE_NUMBER = "N/A"
TEST_COUPON_CODE = "Test Code"
MAX_CLAIM_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AllocationOutcome(str, enum.Enum):
    test = "test"
    existing = "existing"
    allocated = "allocated"


_MESSAGES = {
    AllocationOutcome.test: "Test coupon code provided (no mobile number required)",
    AllocationOutcome.existing: "Coupon already distributed to this mobile number",
    AllocationOutcome.allocated: "Coupon successfully distributed",
}


@dataclass(frozen=True)
class AllocationResult:
    mobile_number: str
    coupon_code: str
    distributed_at: datetime
    outcome: AllocationOutcome

    @property
    def message(self) -> str:
        return _MESSAGES[self.outcome]


def _from_existing(row: DistributionWithCoupon) -> AllocationResult:
    return AllocationResult(
        mobile_number=row.distribution.mobile_number,
        coupon_code=row.coupon.code,
        distributed_at=row.distribution.distributed_at,
        outcome=AllocationOutcome.existing,
    )


class AllocationEngine:
    """
    Hands out one coupon per canonical mobile number.

    Allocation for a new number runs under the store lock: re-check the ledger, take the
    oldest unused coupon and claim it. A claim that loses a race for the coupon retries
    with the next unused one; a claim that loses a race for the number returns the
    distribution that won.
    """

    def __init__(self, store: CouponStore) -> None:
        self.store = store

    async def allocate(self, raw_mobile: str | None) -> AllocationResult:
        if raw_mobile is None or raw_mobile == "":
            metrics.record_test_probe()
            return AllocationResult(
                mobile_number=TEST_MOBILE_NUMBER,
                coupon_code=TEST_COUPON_CODE,
                distributed_at=_now(),
                outcome=AllocationOutcome.test,
            )

        try:
            canonical = normalize_mobile_number(raw_mobile)
        except InvalidMobileNumber:
            metrics.record_invalid_mobile()
            raise

        existing = await self.store.find_distribution_with_coupon(canonical)
        if existing is not None:
            metrics.record_coupon_repeat()
            return _from_existing(existing)

        async with self.store.lock:
            return await self._allocate_new(canonical)

    async def _allocate_new(self, canonical: str) -> AllocationResult:
        existing = await self.store.find_distribution_with_coupon(canonical)
        if existing is not None:
            metrics.record_coupon_repeat()
            return _from_existing(existing)

        for attempt in range(1, MAX_CLAIM_ATTEMPTS + 1):
            unused = await self.store.list_unused_coupons()
            if not unused:
                metrics.record_pool_exhausted()
                logger.warning("coupon_pool_exhausted", extra={"mobile": mask_mobile(canonical)})
                raise PoolExhausted()

            selected = unused[0]
            try:
                claimed = await self.store.claim(canonical, selected.id)
            except DuplicateMobile:
                winner = await self.store.find_distribution_with_coupon(canonical)
                if winner is None:
                    raise
                metrics.record_coupon_repeat()
                return _from_existing(winner)
            except (CouponUnavailable, NotFound):
                logger.info(
                    "coupon_claim_conflict",
                    extra={"coupon_id": selected.id, "attempt": attempt, "mobile": mask_mobile(canonical)},
                )
                continue

            metrics.record_coupon_distributed()
            logger.info(
                "coupon_distributed",
                extra={"coupon_id": claimed.coupon.id, "mobile": mask_mobile(canonical)},
            )
            return AllocationResult(
                mobile_number=canonical,
                coupon_code=claimed.coupon.code,
                distributed_at=claimed.distribution.distributed_at,
                outcome=AllocationOutcome.allocated,
            )

        raise StorageFailure(f"Could not claim a coupon after {MAX_CLAIM_ATTEMPTS} attempts")
