"""X (Twitter) API v2 client for post metrics and authorship."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity.wait import wait_base

from payouts.domain.errors import VerifierError
from payouts.resilience.retry import resilient_api_call
from payouts.verifiers.base import PostMedia, PostMetrics

logger = structlog.get_logger()

X_API_BASE_URL = "https://api.x.com/2"

_TWEET_PARAMS = {
    "tweet.fields": "public_metrics,text,author_id,attachments",
    "expansions": "attachments.media_keys",
    "media.fields": "url,preview_image_url,type",
}


def parse_tweet_payload(post_id: str, payload: dict[str, Any]) -> PostMetrics:
    """Convert an X API v2 tweet lookup response into :class:`PostMetrics`.

    Impression count is the engagement measure; a post without public
    metrics counts as zero.

    Raises:
        VerifierError: If the payload carries no tweet data.
    """
    data = payload.get("data")
    if not data:
        errors = payload.get("errors") or []
        detail = errors[0].get("detail") if errors else "no data returned"
        raise VerifierError(f"X tweet fetch failed: {detail}")

    media = [
        PostMedia(
            type=m.get("type", "photo"),
            url=m.get("url") or None,
            preview_image_url=m.get("preview_image_url") or None,
        )
        for m in (payload.get("includes") or {}).get("media", [])
    ]

    metrics = data.get("public_metrics") or {}
    return PostMetrics(
        post_id=data.get("id", post_id),
        engagement_count=int(metrics.get("impression_count", 0)),
        author_id=data["author_id"],
        text=data.get("text", ""),
        media=media,
    )


class XMetricsClient:
    """Fetch a post's impression count, author and content with a user token.

    Args:
        http: Shared async HTTP client; one is created if omitted.
        base_url: API root, overridable for tests and proxies.
        retry_wait: Tenacity wait strategy override.
    """

    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        base_url: str = X_API_BASE_URL,
        retry_wait: wait_base | None = None,
    ) -> None:
        self._http = http or httpx.AsyncClient(timeout=15.0)
        self._base_url = base_url.rstrip("/")
        self._get = resilient_api_call("x_api", wait=retry_wait)(self._get_once)

    async def _get_once(self, url: str, credential: str) -> httpx.Response:
        return await self._http.get(
            url,
            params=_TWEET_PARAMS,
            headers={"Authorization": f"Bearer {credential}"},
        )

    async def fetch_post(self, post_id: str, credential: str) -> PostMetrics:
        """Fetch metrics for *post_id* on behalf of the credential's owner.

        Raises:
            VerifierError: On any transport failure, non-2xx status or
                malformed payload.
        """
        url = f"{self._base_url}/tweets/{post_id}"
        try:
            response = await self._get(url, credential)
        except httpx.HTTPError as exc:
            raise VerifierError(f"X tweet fetch failed: {exc}") from exc

        if response.is_error:
            logger.warning(
                "X tweet fetch failed", post_id=post_id, status_code=response.status_code
            )
            raise VerifierError(f"X tweet fetch failed: {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise VerifierError("X tweet fetch failed: invalid JSON response") from exc

        return parse_tweet_payload(post_id, payload)

    async def aclose(self) -> None:
        await self._http.aclose()
