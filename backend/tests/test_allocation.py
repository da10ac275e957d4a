import asyncio

import pytest

from couponhub.core import metrics
from couponhub.core.errors import CouponUnavailable, InvalidMobileNumber, PoolExhausted
from couponhub.services.allocation import (
    TEST_COUPON_CODE,
    TEST_MOBILE_NUMBER,
    AllocationEngine,
    AllocationOutcome,
)
from couponhub.services.store import DistributionWithCoupon, MemoryCouponStore


async def _store_with(*codes: str) -> MemoryCouponStore:
    store = MemoryCouponStore()
    for code in codes:
        await store.create_coupon(code)
    return store


@pytest.mark.anyio("asyncio")
async def test_empty_input_is_a_test_probe_that_touches_nothing() -> None:
    store = await _store_with("SAVE10")
    engine = AllocationEngine(store)

    for raw in (None, ""):
        result = await engine.allocate(raw)
        assert result.outcome is AllocationOutcome.test
        assert result.mobile_number == TEST_MOBILE_NUMBER
        assert result.coupon_code == TEST_COUPON_CODE

    assert [c.code for c in await store.list_unused_coupons()] == ["SAVE10"]
    assert await store.list_distributions() == []
    assert metrics.snapshot()["coupon_test_probes"] == 2


@pytest.mark.anyio("asyncio")
async def test_first_unused_coupon_is_allocated_in_insertion_order() -> None:
    store = await _store_with("SAVE10", "WELCOME20", "FIRST15")
    await store.mark_coupon_used(1)
    engine = AllocationEngine(store)

    result = await engine.allocate("9996275888")

    assert result.outcome is AllocationOutcome.allocated
    assert result.message == "Coupon successfully distributed"
    assert result.mobile_number == "919996275888"
    assert result.coupon_code == "WELCOME20"
    distribution = await store.find_distribution("919996275888")
    assert distribution is not None
    assert distribution.coupon_id == 2
    assert result.distributed_at == distribution.distributed_at


@pytest.mark.anyio("asyncio")
async def test_differently_formatted_inputs_get_the_same_coupon() -> None:
    store = await _store_with("SAVE10", "WELCOME20")
    engine = AllocationEngine(store)

    first = await engine.allocate("+919996275888")
    again = await engine.allocate("919996275888")
    local = await engine.allocate("99962 75888")

    assert first.outcome is AllocationOutcome.allocated
    for repeat in (again, local):
        assert repeat.outcome is AllocationOutcome.existing
        assert repeat.message == "Coupon already distributed to this mobile number"
        assert repeat.coupon_code == first.coupon_code
        assert repeat.distributed_at == first.distributed_at
    assert len(await store.list_distributions()) == 1
    assert [c.code for c in await store.list_unused_coupons()] == ["WELCOME20"]


@pytest.mark.anyio("asyncio")
async def test_invalid_input_raises_without_touching_the_pool() -> None:
    store = await _store_with("SAVE10")
    engine = AllocationEngine(store)

    with pytest.raises(InvalidMobileNumber):
        await engine.allocate("12345")

    assert len(await store.list_unused_coupons()) == 1
    assert metrics.snapshot()["invalid_mobile_numbers"] == 1


@pytest.mark.anyio("asyncio")
async def test_single_coupon_pool_exhausts_after_one_new_number() -> None:
    store = await _store_with("SAVE10")
    engine = AllocationEngine(store)

    assert (await engine.allocate("9996275888")).coupon_code == "SAVE10"
    with pytest.raises(PoolExhausted) as exc:
        await engine.allocate("8888888888")
    assert exc.value.status_code == 410

    # The number that already holds a coupon keeps getting it.
    assert (await engine.allocate("9996275888")).coupon_code == "SAVE10"


@pytest.mark.anyio("asyncio")
async def test_concurrent_requests_allocate_distinct_coupons() -> None:
    store = await _store_with(*(f"CODE{i}" for i in range(10)))
    engine = AllocationEngine(store)
    numbers = [f"70000000{i:02d}" for i in range(10)]

    results = await asyncio.gather(*(engine.allocate(n) for n in numbers * 3))

    by_number: dict[str, set[str]] = {}
    for result in results:
        by_number.setdefault(result.mobile_number, set()).add(result.coupon_code)
    assert len(by_number) == 10
    assert all(len(codes) == 1 for codes in by_number.values())
    assert len({next(iter(codes)) for codes in by_number.values()}) == 10
    assert await store.list_unused_coupons() == []
    assert len(await store.list_distributions()) == 10


class _ContestedStore(MemoryCouponStore):
    """Another writer grabs the first coupon just before our claim lands."""

    def __init__(self) -> None:
        super().__init__()
        self.claims = 0

    async def claim(self, mobile_number: str, coupon_id: int) -> DistributionWithCoupon:
        self.claims += 1
        if self.claims == 1:
            await self.mark_coupon_used(coupon_id)
            raise CouponUnavailable(coupon_id)
        return await super().claim(mobile_number, coupon_id)


@pytest.mark.anyio("asyncio")
async def test_lost_coupon_race_retries_with_the_next_coupon() -> None:
    store = _ContestedStore()
    await store.create_coupon("SAVE10")
    await store.create_coupon("WELCOME20")

    result = await AllocationEngine(store).allocate("9996275888")

    assert result.coupon_code == "WELCOME20"
    assert store.claims == 2


class _StaleReadStore(MemoryCouponStore):
    """Ledger reads miss twice, as if a same-number request committed in between."""

    def __init__(self) -> None:
        super().__init__()
        self.misses = 2

    async def find_distribution_with_coupon(self, mobile_number: str):
        if self.misses:
            self.misses -= 1
            return None
        return await super().find_distribution_with_coupon(mobile_number)


@pytest.mark.anyio("asyncio")
async def test_lost_mobile_race_returns_the_winning_distribution() -> None:
    store = _StaleReadStore()
    await store.create_coupon("SAVE10")
    await store.create_coupon("WELCOME20")
    await store.claim("919996275888", 1)

    result = await AllocationEngine(store).allocate("9996275888")

    assert result.outcome is AllocationOutcome.existing
    assert result.coupon_code == "SAVE10"
    # The claim was rolled back, so the second coupon is still available.
    assert [c.code for c in await store.list_unused_coupons()] == ["WELCOME20"]
