"""External verifier contracts and their concrete adapters."""

from payouts.verifiers.base import (
    ContentVerdict,
    ContentVerifier,
    IdentityExpiredError,
    IdentityVerifier,
    LinkedIdentity,
    MetricsVerifier,
    PaymentVerifier,
    PostMedia,
    PostMetrics,
    TransferCheck,
    VerifierError,
)
from payouts.verifiers.content import ClaudeContentVerifier, check_content
from payouts.verifiers.identity import LedgerIdentityDirectory
from payouts.verifiers.solana import SolanaPaymentVerifier
from payouts.verifiers.x_api import XMetricsClient, parse_tweet_payload

__all__ = [
    "ClaudeContentVerifier",
    "ContentVerdict",
    "ContentVerifier",
    "IdentityExpiredError",
    "IdentityVerifier",
    "LedgerIdentityDirectory",
    "LinkedIdentity",
    "MetricsVerifier",
    "PaymentVerifier",
    "PostMedia",
    "PostMetrics",
    "SolanaPaymentVerifier",
    "TransferCheck",
    "VerifierError",
    "XMetricsClient",
    "check_content",
    "parse_tweet_payload",
]
