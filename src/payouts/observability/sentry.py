"""Sentry error reporting for the payout service.

Provides:
- ``init_sentry(dsn, environment)``: Initialize Sentry SDK.  No-op when *dsn* is empty.
- ``get_sentry_processor()``: structlog processor forwarding ERROR events to Sentry.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

# Never ship these request headers to Sentry.
_SCRUBBED_HEADERS = frozenset({"authorization", "x-user-id", "cookie"})


def _scrub_headers(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in _SCRUBBED_HEADERS:
                headers[name] = "[Filtered]"
    return event


def init_sentry(dsn: str, environment: str = "development") -> None:
    """Initialize Sentry SDK with the given *dsn*.

    When *dsn* is empty the function returns immediately; safe to call
    unconditionally at startup.

    Args:
        dsn: Sentry DSN string.  Empty string disables Sentry.
        environment: Deployment environment tag.
    """
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=_scrub_headers,
        integrations=[
            # structlog-sentry reports errors; stdlib logging capture would duplicate them.
            LoggingIntegration(event_level=None, level=None),
        ],
    )
    sentry_sdk.set_tag("service", "campaign-payouts")


def get_sentry_processor() -> structlog.types.Processor:
    """Return a structlog processor that forwards ERROR events to Sentry.

    Insert this into the processor chain after ``add_log_level`` and before
    the renderer.
    """
    return SentryProcessor(event_level=logging.ERROR)
