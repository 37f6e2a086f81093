"""Prometheus metrics instrumentation for the payout engine.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus business counters.
- ``SUBMISSION_OUTCOMES``: Counter of intake results by outcome code.
- ``BUDGET_ALLOCATED`` / ``BUDGET_RELEASED``: Base units moved in and out of
  campaign budgets.
- ``BUNDLES_RECONCILED``: Counter of payment bundles marked paid.

Business metrics are updated where the ledger changes (not by polling the database).
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

SUBMISSION_OUTCOMES: Counter = Counter(
    "payouts_submission_outcomes_total",
    "Engagement submissions by outcome",
    ["outcome"],
)

BUDGET_ALLOCATED: Counter = Counter(
    "payouts_budget_allocated_units_total",
    "Base units allocated from campaign budgets",
)

BUDGET_RELEASED: Counter = Counter(
    "payouts_budget_released_units_total",
    "Base units returned to campaign budgets",
)

BUNDLES_RECONCILED: Counter = Counter(
    "payouts_bundles_reconciled_total",
    "Payment bundles marked paid against a verified transfer",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
