from __future__ import annotations

import sentry_sdk
from sentry_sdk.integrations import Integration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from couponhub.core.config import Settings, settings as default_settings


def init_sentry(settings: Settings | None = None) -> bool:
    """Start error reporting when a DSN is configured; returns whether it was started."""
    settings = settings or default_settings
    if not settings.sentry_dsn:
        return False

    integrations: list[Integration] = [FastApiIntegration()]
    if settings.storage_backend == "database":
        integrations.append(SqlalchemyIntegration())

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=settings.app_version,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=integrations,
        attach_stacktrace=True,
        # Mobile numbers are personal data.
        send_default_pii=False,
    )
    return True
