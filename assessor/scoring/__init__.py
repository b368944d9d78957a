"""Scoring and feedback for assessment attempts."""

from assessor.scoring.engine import score
from assessor.scoring.sanitize import sanitize_details

__all__ = ["sanitize_details", "score"]
