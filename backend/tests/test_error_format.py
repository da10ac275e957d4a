from fastapi.testclient import TestClient

from couponhub.main import get_application
from couponhub.services.store import MemoryCouponStore

client = TestClient(get_application(store=MemoryCouponStore()))


def test_http_error_shape() -> None:
    res = client.get("/api/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not Found"}


def test_method_not_allowed_shape() -> None:
    res = client.post("/api/coupon")
    assert res.status_code == 405
    assert res.json()["success"] is False
