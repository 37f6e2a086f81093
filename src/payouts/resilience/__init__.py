"""Resilience infrastructure for external API calls with retry."""

from payouts.resilience.retry import RETRYABLE_ERRORS, resilient_api_call

__all__ = [
    "RETRYABLE_ERRORS",
    "resilient_api_call",
]
