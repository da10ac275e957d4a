import os
from collections.abc import Generator

import pytest

# No outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""

from couponhub.core import metrics


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    # Metrics are process-global and can leak across tests.
    metrics.reset()
    yield
    metrics.reset()
