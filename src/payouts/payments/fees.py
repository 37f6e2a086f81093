"""Platform fee and referral split arithmetic.

All amounts are integer base units.  Each share is floored; the remainder of
the platform fee stays with the platform and the recipient keeps everything
that is not fee, so the three parts always sum to the total.
"""

from __future__ import annotations

from dataclasses import dataclass

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class FeeSplit:
    """Three-way division of a payout."""

    recipient: int
    platform: int
    referrer: int
    referrer_fee_pct: int = 0

    @property
    def platform_fee(self) -> int:
        """The whole fee before the referrer's cut."""
        return self.platform + self.referrer


def calculate_fee_split(
    total: int, referrer_fee_pct: int = 0, platform_fee_bps: int = 1000
) -> FeeSplit:
    """Split *total* into recipient, platform and referrer shares.

    Args:
        total: Gross payout in base units.
        referrer_fee_pct: Referrer's percentage of the platform fee.  Values
            outside ``(0, 100]`` mean no referrer.
        platform_fee_bps: Platform fee in basis points (1000 = 10%).

    Returns:
        The :class:`FeeSplit`.
    """
    if total < 0:
        raise ValueError("total must not be negative")

    fee = total * platform_fee_bps // BPS_DENOMINATOR
    recipient = total - fee

    if referrer_fee_pct <= 0 or referrer_fee_pct > 100:
        return FeeSplit(recipient=recipient, platform=fee, referrer=0)

    referrer = fee * referrer_fee_pct // 100
    return FeeSplit(
        recipient=recipient,
        platform=fee - referrer,
        referrer=referrer,
        referrer_fee_pct=referrer_fee_pct,
    )
