"""Contracts for the external verifiers the payout engine depends on.

The service only talks to these protocols.  Concrete adapters live beside
this module; tests substitute in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from payouts.domain.errors import ErrorCode, IdentityExpiredError, VerifierError
from payouts.domain.models import ContentGuidelines
from payouts.domain.types import SocialPlatform

__all__ = [
    "ContentVerdict",
    "ContentVerifier",
    "IdentityExpiredError",
    "IdentityVerifier",
    "LinkedIdentity",
    "MetricsVerifier",
    "PaymentVerifier",
    "PostMedia",
    "PostMetrics",
    "TransferCheck",
    "VerifierError",
]


class LinkedIdentity(BaseModel):
    """A user's verified account on an external platform."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    platform: SocialPlatform = SocialPlatform.X
    platform_user_id: str
    platform_username: str | None = None
    access_token: str
    expires_at: datetime | None = None


class PostMedia(BaseModel):
    """One media attachment on a post."""

    model_config = ConfigDict(frozen=True)

    type: Literal["photo", "video", "animated_gif"]
    url: str | None = None
    preview_image_url: str | None = None

    @property
    def review_url(self) -> str | None:
        """The image a reviewer can look at: the photo itself or a video thumbnail."""
        return self.url if self.type == "photo" else self.preview_image_url


class PostMetrics(BaseModel):
    """Engagement and content of a post as reported by the platform."""

    model_config = ConfigDict(frozen=True)

    post_id: str
    engagement_count: int = Field(ge=0)
    author_id: str
    text: str = ""
    media: list[PostMedia] = Field(default_factory=list)


class ContentVerdict(BaseModel):
    """Result of checking a post against campaign guidelines."""

    passed: bool = Field(description="True only if the post complies with every guideline.")
    explanation: str = Field(description="Brief reason for the verdict.")


class TransferCheck(BaseModel):
    """Outcome of verifying an external transfer.

    ``error`` is ``None`` when the transfer checked out; otherwise it carries
    the code the caller should surface.
    """

    model_config = ConfigDict(frozen=True)

    tx_ref: str
    error: ErrorCode | None = None
    message: str = ""
    source: str | None = None
    destination: str | None = None
    amount: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IdentityVerifier(Protocol):
    """Looks up a user's linked platform identity."""

    async def get_identity(self, user_id: str) -> LinkedIdentity | None:
        """Return the linked identity, ``None`` if none is linked.

        Raises:
            IdentityExpiredError: If the stored credential is no longer valid.
        """
        ...


class MetricsVerifier(Protocol):
    """Reads engagement, authorship and content of a post."""

    async def fetch_post(self, post_id: str, credential: str) -> PostMetrics:
        """Fetch a post's metrics.

        Raises:
            VerifierError: With a message suitable for a rejection reason.
        """
        ...


class ContentVerifier(Protocol):
    """Judges a post's compliance with campaign guidelines."""

    async def check(
        self, text: str, media: list[PostMedia], guidelines: ContentGuidelines
    ) -> ContentVerdict:
        """Return a verdict, or raise ``VerifierError`` if the check itself failed."""
        ...


class PaymentVerifier(Protocol):
    """Checks externally executed transfers."""

    async def verify_transfer(self, tx_ref: str, recipient: str, amount: int) -> TransferCheck:
        """Confirm *tx_ref* moved exactly *amount* base units to *recipient*."""
        ...

    async def verify_confirmed(self, tx_ref: str) -> TransferCheck:
        """Confirm *tx_ref* exists, is confirmed and did not fail."""
        ...
