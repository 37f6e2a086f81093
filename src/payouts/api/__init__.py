"""FastAPI surface of the payout service."""

from payouts.api.errors import register_error_handlers
from payouts.api.routes import router

__all__ = ["register_error_handlers", "router"]
