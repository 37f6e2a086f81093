"""Content compliance checking using Claude structured outputs.

The post text and any media (photos directly, video and GIF thumbnails) are
evaluated against the campaign's do/don't lists.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from anthropic import Anthropic, AnthropicError

from payouts.domain.errors import VerifierError
from payouts.domain.models import ContentGuidelines
from payouts.verifiers.base import ContentVerdict, PostMedia

logger = structlog.get_logger()

CONTENT_CHECK_MODEL = "claude-haiku-4-5-20251001"

CONTENT_CHECK_SYSTEM_PROMPT = (
    "You are a content compliance checker for a promotion campaign on a task "
    "marketplace. Your job is to evaluate whether a social media post meets the "
    "campaign guidelines set by the campaign creator.\n\n"
    "Be strict but fair. The post must genuinely follow the guidelines, not just "
    "superficially."
)

MEDIA_NOTE = (
    "\n\nThe post also contains media attachments (images/videos). You MUST "
    "evaluate the media content against the guidelines as well. If any media "
    "violates the guidelines, the post should fail."
)


def _numbered(items: list[str]) -> str:
    return "\n".join(f"  {i}. {item}" for i, item in enumerate(items, start=1))


def build_content_blocks(
    text: str, media: list[PostMedia], guidelines: ContentGuidelines
) -> list[dict[str, Any]]:
    """Build the user message content: the evaluation prompt then one image per attachment.

    Attachments without a reviewable image are skipped.
    """
    media_description = ""
    if media:
        media_description = (
            f"\n\nThe post includes {len(media)} media attachment(s). The images are "
            "provided below for your review. Evaluate both the text AND all media "
            "against the guidelines."
        )

    blocks: list[dict[str, Any]] = [
        {
            "type": "text",
            "text": (
                "Evaluate this post against the campaign guidelines.\n\n"
                "CAMPAIGN GUIDELINES:\n"
                f"DO:\n{_numbered(guidelines.dos)}\n\n"
                f"DON'T:\n{_numbered(guidelines.donts)}\n\n"
                f'POST CONTENT (text):\n"""\n{text}\n"""{media_description}\n\n'
                "Does this post comply with ALL guidelines?"
            ),
        }
    ]

    for item in media:
        image_url = item.review_url
        if not image_url:
            continue
        if item.type != "photo":
            label = "Video thumbnail" if item.type == "video" else "Animated GIF frame"
            blocks.append(
                {
                    "type": "text",
                    "text": f"[{label}, only the preview image is available for review]:",
                }
            )
        blocks.append({"type": "image", "source": {"type": "url", "url": image_url}})

    return blocks


def check_content(
    text: str,
    media: list[PostMedia],
    guidelines: ContentGuidelines,
    client: Anthropic,
    *,
    model: str = CONTENT_CHECK_MODEL,
) -> ContentVerdict:
    """Judge a post against campaign guidelines with ``client.messages.parse()``.

    Args:
        text: The post's text.
        media: The post's media attachments.
        guidelines: The campaign's do/don't lists.
        client: An ``anthropic.Anthropic`` instance (or compatible mock).
        model: The Anthropic model ID to use.

    Returns:
        The validated verdict.

    Raises:
        VerifierError: If the API call fails or returns no parsed output.
    """
    system = CONTENT_CHECK_SYSTEM_PROMPT + (MEDIA_NOTE if media else "")
    try:
        response = client.messages.parse(
            model=model,
            max_tokens=1024,
            temperature=0.1,
            system=system,
            messages=[{"role": "user", "content": build_content_blocks(text, media, guidelines)}],
            output_format=ContentVerdict,
        )
    except AnthropicError as exc:
        logger.warning("Content check call failed", error=str(exc))
        raise VerifierError(f"Claude request failed: {exc}") from exc

    parsed = response.parsed_output
    if parsed is None:
        raise VerifierError("empty response from Claude")
    verdict: ContentVerdict = parsed
    return verdict


class ClaudeContentVerifier:
    """Async adapter running :func:`check_content` off the event loop."""

    def __init__(self, client: Anthropic, *, model: str = CONTENT_CHECK_MODEL) -> None:
        self._client = client
        self._model = model

    async def check(
        self, text: str, media: list[PostMedia], guidelines: ContentGuidelines
    ) -> ContentVerdict:
        return await asyncio.to_thread(
            check_content, text, media, guidelines, self._client, model=self._model
        )
