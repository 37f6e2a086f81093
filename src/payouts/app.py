"""Application entry point serving the payout API with FastAPI and uvicorn.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error forwarding through structlog when ``SENTRY_DSN`` is set
- **Ledger** database and audit table, shared by every component
- **Verifiers** for X metrics, Claude content checks and Solana transfers
- **Prometheus** ``/metrics`` and request-ID middleware on the HTTP app
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from anthropic import Anthropic
from fastapi import FastAPI

from payouts.api import register_error_handlers, router
from payouts.config import Settings, get_settings, validate_credentials
from payouts.health import register_health_routes
from payouts.ledger.schema import open_ledger
from payouts.observability.metrics import setup_metrics
from payouts.observability.middleware import SERVICE_NAME, RequestContextMiddleware
from payouts.observability.sentry import get_sentry_processor, init_sentry
from payouts.service import PayoutService, bootstrap_ledger
from payouts.verifiers.content import ClaudeContentVerifier
from payouts.verifiers.identity import LedgerIdentityDirectory
from payouts.verifiers.solana import SolanaPaymentVerifier
from payouts.verifiers.x_api import XMetricsClient

logger = structlog.get_logger()


def configure_logging(production: bool = False, *, sentry: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry: Forward ERROR events to Sentry.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if sentry:
        shared_processors.insert(2, get_sentry_processor())

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Opens the ledger database (creating its tables), then builds the
    verifier adapters and the :class:`PayoutService`.  When the Solana RPC
    url or the Anthropic key is missing the service is left unset and
    ``/ready`` reports it.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    # a. Ledger database with the audit table on the same file
    db_path = settings.ledger_db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    ledger_conn = open_ledger(db_path)
    bootstrap_ledger(ledger_conn)
    services["ledger_conn"] = ledger_conn

    # b. X metrics client (users' own access tokens, no app credential)
    metrics_client = XMetricsClient(base_url=settings.x_api_base_url)
    services["metrics_client"] = metrics_client

    # c. Solana payment verifier (if RPC url is set)
    payment_verifier = None
    if settings.solana_rpc_url:
        payment_verifier = SolanaPaymentVerifier(settings.solana_rpc_url)
        logger.info("Solana payment verifier initialized")
    else:
        logger.info("SOLANA_RPC_URL not set, payment verification disabled")
    services["payment_verifier"] = payment_verifier

    # d. Anthropic content verifier (if anthropic_api_key is set)
    content_verifier = None
    api_key = settings.anthropic_api_key.get_secret_value()
    if api_key:
        content_verifier = ClaudeContentVerifier(
            Anthropic(api_key=api_key), model=settings.content_check_model
        )
        logger.info("Content verifier initialized", model=settings.content_check_model)
    else:
        logger.info("ANTHROPIC_API_KEY not set, content checks disabled")
    services["content_verifier"] = content_verifier

    # e. Payout service
    payout_service = None
    if payment_verifier is not None and content_verifier is not None:
        payout_service = PayoutService(
            ledger_conn,
            settings.payout_config(),
            identity=LedgerIdentityDirectory(ledger_conn),
            metrics=metrics_client,
            content=content_verifier,
            payments=payment_verifier,
        )
        logger.info("Payout service initialized", ledger_db=str(db_path))
    else:
        logger.warning("Payout service disabled until verifiers are configured")
    services["payout_service"] = payout_service

    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Close HTTP clients and the ledger connection on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    services = app.state.services
    logger.info("FastAPI application starting")
    yield
    for name in ("metrics_client", "payment_verifier"):
        client = services.get(name)
        if client is not None:
            await client.aclose()
    ledger_conn = services.get("ledger_conn")
    if ledger_conn is not None:
        ledger_conn.close()
        logger.info("Ledger database connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with middleware, metrics, health and payout routes.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Campaign Payouts", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.add_middleware(RequestContextMiddleware)
    setup_metrics(fastapi_app)
    register_error_handlers(fastapi_app)
    register_health_routes(fastapi_app)
    fastapi_app.include_router(router)
    return fastapi_app


async def main() -> None:
    """Main entry point: serve the payout API until interrupted.

    1. Configure logging and Sentry
    2. Validate credentials
    3. Initialize services and create the FastAPI app
    4. Run uvicorn
    """
    settings = get_settings()
    init_sentry(settings.sentry_dsn, "production" if settings.production else "development")
    configure_logging(production=settings.production, sentry=bool(settings.sentry_dsn))
    logger.info("Application starting")

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.api_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()


def run() -> None:
    """Console-script wrapper around :func:`main`."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
