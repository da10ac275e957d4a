from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str) -> None:
    with _lock:
        _metrics[key] += 1


def record_coupon_distributed() -> None:
    _inc("coupons_distributed")


def record_coupon_repeat() -> None:
    _inc("coupon_repeat_lookups")


def record_test_probe() -> None:
    _inc("coupon_test_probes")


def record_invalid_mobile() -> None:
    _inc("invalid_mobile_numbers")


def record_pool_exhausted() -> None:
    _inc("pool_exhausted")


def record_rate_limited() -> None:
    _inc("rate_limited")


def record_pool_reload() -> None:
    _inc("pool_reloads")


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
