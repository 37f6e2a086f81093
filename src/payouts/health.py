"""Health and readiness endpoints for container orchestration.

Provides two top-level routes:

- ``GET /health`` -- Liveness check.  Returns 200 if the process is alive.
- ``GET /ready``  -- Readiness check.  Returns 200 only when the ledger DB
  answers a query **and** the payout service is wired.  Returns 503 with
  per-check details otherwise.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness check -- always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness check -- checks the ledger DB and the payout service."""
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        ledger_conn = services.get("ledger_conn")
        if ledger_conn is not None:
            try:
                await asyncio.to_thread(ledger_conn.execute, "SELECT 1 FROM campaigns LIMIT 1")
                checks["ledger_db"] = "ok"
            except sqlite3.Error:
                checks["ledger_db"] = "fail"
        else:
            checks["ledger_db"] = "fail"

        checks["payout_service"] = "ok" if services.get("payout_service") is not None else "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
