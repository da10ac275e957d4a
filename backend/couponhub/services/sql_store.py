from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from couponhub.core.errors import CouponUnavailable, DuplicateCode, DuplicateMobile, NotFound, StorageFailure
from couponhub.models.coupon import Coupon, CouponDistribution
from couponhub.services.store import CouponRecord, CouponStore, DistributionRecord, DistributionWithCoupon

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _coupon_record(row: Coupon) -> CouponRecord:
    return CouponRecord(id=row.id, code=row.code, is_used=bool(row.is_used), created_at=_aware(row.created_at))


def _distribution_record(row: CouponDistribution) -> DistributionRecord:
    return DistributionRecord(
        id=row.id,
        mobile_number=row.mobile_number,
        coupon_id=row.coupon_id,
        distributed_at=_aware(row.distributed_at),
    )


class SqlCouponStore(CouponStore):
    """Relational store over the ``coupons`` and ``coupon_distributions`` tables."""

    backend = "database"

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], *, engine: AsyncEngine | None = None) -> None:
        super().__init__()
        self._sessionmaker = sessionmaker
        self._engine = engine

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessionmaker() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageFailure("Coupon storage is unavailable") from exc

    @property
    def engine(self) -> AsyncEngine | None:
        return self._engine

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def list_coupons(self) -> list[CouponRecord]:
        async with self._session() as session:
            rows = (await session.execute(select(Coupon).order_by(Coupon.id))).scalars().all()
            return [_coupon_record(row) for row in rows]

    async def list_unused_coupons(self) -> list[CouponRecord]:
        async with self._session() as session:
            stmt = select(Coupon).where(Coupon.is_used.is_(False)).order_by(Coupon.id)
            rows = (await session.execute(stmt)).scalars().all()
            return [_coupon_record(row) for row in rows]

    async def create_coupon(self, code: str) -> CouponRecord:
        async with self._session() as session:
            coupon = Coupon(code=code, is_used=False, created_at=_now())
            session.add(coupon)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateCode(code) from None
            return _coupon_record(coupon)

    async def mark_coupon_used(self, coupon_id: int) -> CouponRecord:
        async with self._session() as session:
            coupon = await session.get(Coupon, coupon_id)
            if coupon is None:
                raise NotFound(f"Coupon {coupon_id} not found")
            if not coupon.is_used:
                coupon.is_used = True
                await session.commit()
            return _coupon_record(coupon)

    async def clear_coupons(self) -> None:
        # Distributions reference coupons, so the ledger goes with the pool here.
        await self.reset()

    async def find_distribution(self, mobile_number: str) -> DistributionRecord | None:
        async with self._session() as session:
            stmt = select(CouponDistribution).where(CouponDistribution.mobile_number == mobile_number)
            row = (await session.execute(stmt)).scalars().first()
            return _distribution_record(row) if row else None

    async def find_distribution_with_coupon(self, mobile_number: str) -> DistributionWithCoupon | None:
        async with self._session() as session:
            stmt = (
                select(CouponDistribution, Coupon)
                .join(Coupon, Coupon.id == CouponDistribution.coupon_id)
                .where(CouponDistribution.mobile_number == mobile_number)
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                return None
            distribution, coupon = row
            return DistributionWithCoupon(distribution=_distribution_record(distribution), coupon=_coupon_record(coupon))

    async def create_distribution(self, mobile_number: str, coupon_id: int) -> DistributionRecord:
        async with self._session() as session:
            distribution = CouponDistribution(mobile_number=mobile_number, coupon_id=coupon_id, distributed_at=_now())
            session.add(distribution)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateMobile(mobile_number) from None
            return _distribution_record(distribution)

    async def list_distributions(self) -> list[DistributionRecord]:
        async with self._session() as session:
            rows = (await session.execute(select(CouponDistribution).order_by(CouponDistribution.id))).scalars().all()
            return [_distribution_record(row) for row in rows]

    async def list_distributions_with_coupons(self) -> list[DistributionWithCoupon]:
        async with self._session() as session:
            stmt = (
                select(CouponDistribution, Coupon)
                .join(Coupon, Coupon.id == CouponDistribution.coupon_id)
                .order_by(CouponDistribution.id)
            )
            rows = (await session.execute(stmt)).all()
            return [
                DistributionWithCoupon(distribution=_distribution_record(d), coupon=_coupon_record(c)) for d, c in rows
            ]

    async def clear_distributions(self) -> None:
        async with self._session() as session:
            if session.get_bind().dialect.name == "postgresql":
                await session.execute(text("TRUNCATE TABLE coupon_distributions RESTART IDENTITY"))
            else:
                await session.execute(delete(CouponDistribution))
            await session.commit()

    async def reset(self) -> None:
        """Clear ledger and pool in one transaction."""
        async with self._session() as session:
            if session.get_bind().dialect.name == "postgresql":
                await session.execute(text("TRUNCATE TABLE coupon_distributions, coupons RESTART IDENTITY"))
            else:
                await session.execute(delete(CouponDistribution))
                await session.execute(delete(Coupon))
            await session.commit()

    async def claim(self, mobile_number: str, coupon_id: int) -> DistributionWithCoupon:
        async with self._session() as session:
            result = await session.execute(
                update(Coupon).where(Coupon.id == coupon_id, Coupon.is_used.is_(False)).values(is_used=True)
            )
            if result.rowcount != 1:
                await session.rollback()
                if await session.get(Coupon, coupon_id) is None:
                    raise NotFound(f"Coupon {coupon_id} not found")
                raise CouponUnavailable(coupon_id)

            distribution = CouponDistribution(mobile_number=mobile_number, coupon_id=coupon_id, distributed_at=_now())
            session.add(distribution)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                taken = await session.execute(
                    select(CouponDistribution.id).where(CouponDistribution.mobile_number == mobile_number)
                )
                if taken.first() is not None:
                    raise DuplicateMobile(mobile_number) from None
                raise CouponUnavailable(coupon_id) from None

            coupon = await session.get(Coupon, coupon_id, populate_existing=True)
            if coupon is None:
                raise NotFound(f"Coupon {coupon_id} not found")
            return DistributionWithCoupon(distribution=_distribution_record(distribution), coupon=_coupon_record(coupon))
