from __future__ import annotations

import abc
import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from couponhub.core.errors import CouponUnavailable, DuplicateCode, DuplicateMobile, NotFound


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CouponRecord:
    id: int
    code: str
    is_used: bool
    created_at: datetime


@dataclass(frozen=True)
class DistributionRecord:
    id: int
    mobile_number: str
    coupon_id: int
    distributed_at: datetime


@dataclass(frozen=True)
class DistributionWithCoupon:
    distribution: DistributionRecord
    coupon: CouponRecord


class CouponStore(abc.ABC):
    """
    Coupon pool plus distribution ledger behind one interface.

    The pool owns coupon records; the ledger owns distribution records and refers to
    coupons by id only. ``lock`` is the single serialization point writers share
    within this process.
    """

    backend: str = "abstract"

    def __init__(self) -> None:
        self.lock = asyncio.Lock()

    # pool

    @abc.abstractmethod
    async def list_coupons(self) -> list[CouponRecord]:
        """All coupons in insertion order."""

    @abc.abstractmethod
    async def list_unused_coupons(self) -> list[CouponRecord]:
        """Unused coupons in insertion order."""

    @abc.abstractmethod
    async def create_coupon(self, code: str) -> CouponRecord:
        """Add a code to the pool. Raises DuplicateCode on an exact, case-sensitive match."""

    @abc.abstractmethod
    async def mark_coupon_used(self, coupon_id: int) -> CouponRecord:
        """Flip is_used to true. Re-marking succeeds; an unknown id raises NotFound."""

    @abc.abstractmethod
    async def clear_coupons(self) -> None:
        """Empty the pool and restart ids at 1."""

    # ledger

    @abc.abstractmethod
    async def find_distribution(self, mobile_number: str) -> DistributionRecord | None: ...

    @abc.abstractmethod
    async def find_distribution_with_coupon(self, mobile_number: str) -> DistributionWithCoupon | None:
        """Distribution joined with its coupon; a dangling coupon id reads as absent."""

    @abc.abstractmethod
    async def create_distribution(self, mobile_number: str, coupon_id: int) -> DistributionRecord:
        """Record an allocation. Raises DuplicateMobile if the number already has one."""

    @abc.abstractmethod
    async def list_distributions(self) -> list[DistributionRecord]: ...

    @abc.abstractmethod
    async def list_distributions_with_coupons(self) -> list[DistributionWithCoupon]: ...

    @abc.abstractmethod
    async def clear_distributions(self) -> None:
        """Empty the ledger and restart ids at 1."""

    # combined

    @abc.abstractmethod
    async def claim(self, mobile_number: str, coupon_id: int) -> DistributionWithCoupon:
        """
        Mark an unused coupon as used and record it against ``mobile_number`` as one step.

        Either both writes happen or neither does.

        Raises:
            DuplicateMobile: the number already holds a coupon.
            CouponUnavailable: the coupon is already used.
            NotFound: the coupon does not exist.
        """

    async def reset(self) -> None:
        """Clear ledger and pool together."""
        await self.clear_distributions()
        await self.clear_coupons()

    async def close(self) -> None:
        return None


class MemoryCouponStore(CouponStore):
    """Process-lifetime store backed by insertion-ordered dicts."""

    backend = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._coupons: dict[int, CouponRecord] = {}
        self._codes: set[str] = set()
        self._distributions: dict[str, DistributionRecord] = {}
        self._next_coupon_id = 1
        self._next_distribution_id = 1

    async def list_coupons(self) -> list[CouponRecord]:
        return list(self._coupons.values())

    async def list_unused_coupons(self) -> list[CouponRecord]:
        return [c for c in self._coupons.values() if not c.is_used]

    async def create_coupon(self, code: str) -> CouponRecord:
        if code in self._codes:
            raise DuplicateCode(code)
        coupon = CouponRecord(id=self._next_coupon_id, code=code, is_used=False, created_at=_now())
        self._next_coupon_id += 1
        self._coupons[coupon.id] = coupon
        self._codes.add(code)
        return coupon

    async def mark_coupon_used(self, coupon_id: int) -> CouponRecord:
        coupon = self._coupons.get(coupon_id)
        if coupon is None:
            raise NotFound(f"Coupon {coupon_id} not found")
        if not coupon.is_used:
            coupon = replace(coupon, is_used=True)
            self._coupons[coupon_id] = coupon
        return coupon

    async def clear_coupons(self) -> None:
        self._coupons.clear()
        self._codes.clear()
        self._next_coupon_id = 1

    async def find_distribution(self, mobile_number: str) -> DistributionRecord | None:
        return self._distributions.get(mobile_number)

    async def find_distribution_with_coupon(self, mobile_number: str) -> DistributionWithCoupon | None:
        distribution = self._distributions.get(mobile_number)
        if distribution is None:
            return None
        coupon = self._coupons.get(distribution.coupon_id)
        if coupon is None:
            return None
        return DistributionWithCoupon(distribution=distribution, coupon=coupon)

    async def create_distribution(self, mobile_number: str, coupon_id: int) -> DistributionRecord:
        if mobile_number in self._distributions:
            raise DuplicateMobile(mobile_number)
        distribution = DistributionRecord(
            id=self._next_distribution_id,
            mobile_number=mobile_number,
            coupon_id=coupon_id,
            distributed_at=_now(),
        )
        self._next_distribution_id += 1
        self._distributions[mobile_number] = distribution
        return distribution

    async def list_distributions(self) -> list[DistributionRecord]:
        return list(self._distributions.values())

    async def list_distributions_with_coupons(self) -> list[DistributionWithCoupon]:
        rows: list[DistributionWithCoupon] = []
        for distribution in self._distributions.values():
            coupon = self._coupons.get(distribution.coupon_id)
            if coupon is not None:
                rows.append(DistributionWithCoupon(distribution=distribution, coupon=coupon))
        return rows

    async def clear_distributions(self) -> None:
        self._distributions.clear()
        self._next_distribution_id = 1

    async def claim(self, mobile_number: str, coupon_id: int) -> DistributionWithCoupon:
        # The helpers below never suspend, so checks and writes run as one step on the loop.
        if mobile_number in self._distributions:
            raise DuplicateMobile(mobile_number)
        coupon = self._coupons.get(coupon_id)
        if coupon is None:
            raise NotFound(f"Coupon {coupon_id} not found")
        if coupon.is_used:
            raise CouponUnavailable(coupon_id)
        coupon = await self.mark_coupon_used(coupon_id)
        distribution = await self.create_distribution(mobile_number, coupon_id)
        return DistributionWithCoupon(distribution=distribution, coupon=coupon)
