from __future__ import annotations

from dataclasses import dataclass

from couponhub.services.store import CouponStore


@dataclass(frozen=True)
class PoolStats:
    total_coupons: int
    distributed_coupons: int
    available_coupons: int

    @property
    def distribution_rate(self) -> str:
        if self.total_coupons == 0:
            return "0%"
        return f"{self.distributed_coupons / self.total_coupons * 100:.1f}%"


async def pool_stats(store: CouponStore) -> PoolStats:
    coupons = await store.list_coupons()
    distributions = await store.list_distributions()
    return PoolStats(
        total_coupons=len(coupons),
        distributed_coupons=len(distributions),
        available_coupons=sum(1 for coupon in coupons if not coupon.is_used),
    )
