"""Submission intake: post URL parsing and the verification pipeline."""

from payouts.intake.pipeline import SubmissionIntake
from payouts.intake.post_ref import PostRef, extract_post_id, parse_post_url

__all__ = [
    "PostRef",
    "SubmissionIntake",
    "extract_post_id",
    "parse_post_url",
]
