"""Payment bundling, reconciliation, fee splits and referrals."""

from payouts.payments.bundler import PaymentBundler
from payouts.payments.fees import BPS_DENOMINATOR, FeeSplit, calculate_fee_split
from payouts.payments.reconciler import PaymentReconciler
from payouts.payments.referrals import LedgerReferralDirectory, ReferralDirectory

__all__ = [
    "BPS_DENOMINATOR",
    "FeeSplit",
    "LedgerReferralDirectory",
    "PaymentBundler",
    "PaymentReconciler",
    "ReferralDirectory",
    "calculate_fee_split",
]
