"""Reputation Rules - rating validation and score formatting for agent reputation.

Invariants:
    - Accepted ratings are integers in [MIN_RATING, MAX_RATING]; bool is not a rating
    - score is the mean rating x100, rounded half up
    - average_rating is score / 100 with exactly two decimals

Design Decisions:
    - mean_score exists for the in-memory ledger and tests; orchestrators never
      recompute scores locally, they read the ledger's value back
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from propchain.core.domain_types import MAX_RATING, MIN_RATING, SCORE_SCALE, AgentAddress
from propchain.core.errors import InvalidRatingError, ValidationError

_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class ReputationSnapshot:
    """Confirmed on-ledger reputation of one agent."""
    agent_address: AgentAddress
    score: int
    review_count: int
    verified: bool
    fraud_report_count: int

    @property
    def average_rating(self) -> str:
        return format_average(self.score)

    def to_dict(self) -> dict:
        return {
            "agent_address": self.agent_address,
            "average_rating": self.average_rating,
            "review_count": self.review_count,
            "verified": self.verified,
            "fraud_report_count": self.fraud_report_count,
        }


def validate_rating(rating: object) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError(rating)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRatingError(rating)
    return rating


def validate_text(text: str | None, field: str) -> str:
    if text is None or not text.strip():
        raise ValidationError(f"{field} cannot be empty", field)
    return text


def mean_score(ratings: list[int]) -> int:
    """Arithmetic mean x100, rounded to the nearest integer (half up)."""
    if not ratings:
        return 0
    mean = Decimal(sum(ratings) * SCORE_SCALE) / Decimal(len(ratings))
    return int(mean.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_average(score: int) -> str:
    return str((Decimal(score) / SCORE_SCALE).quantize(_TWO_PLACES))


def running_average(current: float | None, count: int | None, rating: float) -> tuple[float, int]:
    """Off-ledger listing star rating: fold one rating into a cached average."""
    count = count or 0
    total = (current or 0.0) * count + rating
    return total / (count + 1), count + 1
