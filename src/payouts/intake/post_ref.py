"""Parsing of external post URLs into platform post references."""

from __future__ import annotations

import re
from dataclasses import dataclass

from payouts.domain.errors import ErrorCode, PayoutError
from payouts.domain.types import SocialPlatform

# https://x.com/user/status/123, https://twitter.com/user/status/123
_X_STATUS_RE = re.compile(r"(?:twitter\.com|x\.com)/\w+/status/(\d+)")


@dataclass(frozen=True)
class PostRef:
    """A post identified by platform and platform-native ID."""

    platform: SocialPlatform
    post_id: str
    url: str


def extract_post_id(url: str) -> str | None:
    """Return the status ID from an X/Twitter post URL, or ``None``."""
    match = _X_STATUS_RE.search(url)
    return match.group(1) if match else None


def parse_post_url(url: str) -> PostRef:
    """Parse a submitted post URL.

    Raises:
        PayoutError: ``INVALID_URL`` if the URL is not an X/Twitter status link.
    """
    cleaned = url.strip()
    post_id = extract_post_id(cleaned)
    if post_id is None:
        raise PayoutError(
            ErrorCode.INVALID_URL,
            "Invalid X/Twitter post URL. Expected format: https://x.com/username/status/123456",
        )
    return PostRef(platform=SocialPlatform.X, post_id=post_id, url=cleaned)
