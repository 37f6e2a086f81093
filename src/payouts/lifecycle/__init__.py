"""Campaign lifecycle and creator controls."""

from payouts.lifecycle.campaigns import (
    DEFAULT_PAGE_SIZE,
    FINISHED_REASON,
    MAX_PAGE_SIZE,
    CampaignLifecycle,
)
from payouts.lifecycle.controls import CreatorControls, normalize_reason

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "FINISHED_REASON",
    "MAX_PAGE_SIZE",
    "CampaignLifecycle",
    "CreatorControls",
    "normalize_reason",
]
