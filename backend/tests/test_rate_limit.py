import asyncio
from typing import Dict

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from couponhub.core import metrics
from couponhub.core import rate_limit
from couponhub.core.config import Settings, settings
from couponhub.core.errors import RateLimited
from couponhub.main import get_application
from couponhub.services.store import MemoryCouponStore


@pytest.fixture
def rate_limit_app() -> Dict[str, object]:
    store = MemoryCouponStore()
    asyncio.run(store.create_coupon("SAVE10"))
    client = TestClient(get_application(store=store))
    yield {"client": client}
    client.close()


def test_coupon_rate_limiter(rate_limit_app: Dict[str, object]) -> None:
    client: TestClient = rate_limit_app["client"]  # type: ignore[assignment]

    limit = settings.coupon_rate_limit
    for _ in range(limit):
        ok = client.get("/api/coupon", params={"mobileNumber": "9996275888"})
        assert ok.status_code == 200, ok.text

    blocked = client.get("/api/coupon", params={"mobileNumber": "9996275888"})
    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1
    assert blocked.headers.get("X-Request-ID")
    body = blocked.json()
    assert body["success"] is False
    assert body["error"] == "Rate limit exceeded"
    assert body["retryAfter"] == f"{settings.coupon_rate_limit_window_seconds} seconds"
    assert metrics.snapshot()["rate_limited"] == 1


def test_rate_limit_is_per_client_and_only_on_coupon_route(rate_limit_app: Dict[str, object]) -> None:
    client: TestClient = rate_limit_app["client"]  # type: ignore[assignment]

    for _ in range(settings.coupon_rate_limit):
        client.get("/api/coupon", headers={"X-Forwarded-For": "203.0.113.7"})
    assert client.get("/api/coupon", headers={"X-Forwarded-For": "203.0.113.7"}).status_code == 429

    other = client.get("/api/coupon", headers={"X-Forwarded-For": "198.51.100.2, 10.0.0.1"})
    assert other.status_code == 200
    assert client.get("/api/admin/stats", headers={"X-Forwarded-For": "203.0.113.7"}).status_code == 200
    assert set(client.app.state.coupon_rate_limit.buckets) == {"203.0.113.7", "198.51.100.2"}


def test_fixed_window_resets_after_expiry() -> None:
    counters: dict = {}
    for _ in range(3):
        rate_limit._enforce_limit(counters, "ip", 3, 60, now=1000.0)
    with pytest.raises(RateLimited) as exc:
        rate_limit._enforce_limit(counters, "ip", 3, 60, now=1030.0)
    assert exc.value.retry_after == 30
    assert exc.value.window_seconds == 60

    rate_limit._enforce_limit(counters, "ip", 3, 60, now=1060.0)
    assert counters["ip"].count == 1


def test_disabled_limiter_lets_everything_through() -> None:
    dependency = rate_limit.per_identifier_limiter(lambda _r: "ip", 1, 60, key="test", enabled=False)
    request = Request({"type": "http", "headers": [], "client": ("127.0.0.1", 1234)})

    async def hammer() -> None:
        for _ in range(5):
            await dependency(request)

    asyncio.run(hammer())
    assert dependency.buckets == {}


def test_client_address_prefers_forwarded_header() -> None:
    forwarded = Request({"type": "http", "headers": [(b"x-forwarded-for", b" 203.0.113.7 , 10.0.0.1")], "client": ("10.0.0.1", 1)})
    direct = Request({"type": "http", "headers": [], "client": ("10.0.0.2", 1)})
    anonymous = Request({"type": "http", "headers": []})

    assert rate_limit.client_address(forwarded) == "203.0.113.7"
    assert rate_limit.client_address(direct) == "10.0.0.2"
    assert rate_limit.client_address(anonymous) == "unknown"


def test_limiter_follows_the_application_settings() -> None:
    store = MemoryCouponStore()
    disabled = TestClient(get_application(Settings(coupon_rate_limit_enabled=False), store=store))
    statuses = [disabled.get("/api/coupon").status_code for _ in range(12)]
    assert statuses == [200] * 12
    disabled.close()

    strict = TestClient(
        get_application(Settings(coupon_rate_limit=2, coupon_rate_limit_window_seconds=30), store=store)
    )
    assert [strict.get("/api/coupon").status_code for _ in range(3)] == [200, 200, 429]
    assert strict.get("/api/coupon").json()["retryAfter"] == "30 seconds"
    strict.close()


def test_expired_windows_are_swept(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit, "_PRUNE_AT", 2)
    counters: dict = {}
    rate_limit._enforce_limit(counters, "idle", 5, 60, now=1000.0)
    rate_limit._enforce_limit(counters, "busy", 5, 60, now=1050.0)

    rate_limit._enforce_limit(counters, "new", 5, 60, now=1070.0)

    assert set(counters) == {"busy", "new"}
