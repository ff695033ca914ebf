"""Comparative rating engine for insurer quote candidates.

Pure Python, Decimal arithmetic. The baseline is always the current pool:
only candidates with a positive premium count, and scores are recomputed
against whatever is in the pool at call time.

Weighting (max 100):
  40 — premium competitiveness (lowest premium = 40, highest = 0;
       flat 20 when fewer than two distinct priced premiums; an unpriced
       candidate gets 0)
  25 — terms favorability (+20 above 50 chars, +5 more above 200)
  20 — coverage comprehensiveness (4 per coverage category, capped)
  10 — response timeliness (response received)
   5 — commission competitiveness (split ≥ pool mean)

AI evaluation mode perturbs the base score through an injectable
ScoringStrategy, bounded to ±10, and attaches qualitative labels.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from quotedesk.schemas.quotes import AiAnalysis, CandidateQuote, ScoreBreakdown

PREMIUM_WEIGHT = Decimal("40")
PREMIUM_NEUTRAL = Decimal("20")
TERMS_POINTS = 20
TERMS_BONUS_POINTS = 5
TERMS_MIN_LENGTH = 50
TERMS_BONUS_LENGTH = 200
COVERAGE_POINTS_PER_CATEGORY = 4
COVERAGE_CAP = 20
TIMELINESS_POINTS = 10
COMMISSION_POINTS = 5

MAX_SCORE = 100
MAX_AI_ADJUSTMENT = 10


def _clamp(value: int, low: int = 0, high: int = MAX_SCORE) -> int:
    return max(low, min(high, value))


def priced_pool(pool: Sequence[CandidateQuote]) -> list[CandidateQuote]:
    """Candidates that quoted a positive premium; the comparison baseline."""
    return [c for c in pool if c.premium_quoted > 0]


class RatingEngine:
    """Stateless scorer. Call :meth:`score` with a candidate and the current pool."""

    def breakdown(self, candidate: CandidateQuote, pool: Sequence[CandidateQuote]) -> ScoreBreakdown:
        """Compute every weighted component for one candidate.

        A pool with zero priced candidates yields an all-zero breakdown.
        """
        priced = priced_pool(pool)
        if not priced:
            return ScoreBreakdown()

        premium = self._premium_component(candidate, priced)
        terms = self._terms_component(candidate)
        coverage = min(len(candidate.coverage_limits) * COVERAGE_POINTS_PER_CATEGORY, COVERAGE_CAP)
        timeliness = TIMELINESS_POINTS if candidate.response_received else 0
        commission = self._commission_component(candidate, priced)

        raw = premium + terms + coverage + timeliness + commission
        clamped = max(Decimal("0"), min(Decimal(MAX_SCORE), raw))
        total = int(clamped.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        return ScoreBreakdown(
            premium=premium,
            terms=terms,
            coverage=coverage,
            timeliness=timeliness,
            commission=commission,
            total=total,
        )

    def score(self, candidate: CandidateQuote, pool: Sequence[CandidateQuote]) -> int:
        """Integer rating in 0..100 for ``candidate`` against ``pool``."""
        return self.breakdown(candidate, pool).total

    @staticmethod
    def _premium_component(candidate: CandidateQuote, priced: list[CandidateQuote]) -> Decimal:
        if candidate.premium_quoted <= 0:
            return Decimal("0")
        premiums = [c.premium_quoted for c in priced]
        low, high = min(premiums), max(premiums)
        spread = high - low
        if len(priced) < 2 or spread == 0:
            return PREMIUM_NEUTRAL
        component = (high - candidate.premium_quoted) / spread * PREMIUM_WEIGHT
        return max(Decimal("0"), min(PREMIUM_WEIGHT, component))

    @staticmethod
    def _terms_component(candidate: CandidateQuote) -> int:
        length = len(candidate.terms_conditions)
        if length <= TERMS_MIN_LENGTH:
            return 0
        if length > TERMS_BONUS_LENGTH:
            return TERMS_POINTS + TERMS_BONUS_POINTS
        return TERMS_POINTS

    @staticmethod
    def _commission_component(candidate: CandidateQuote, priced: list[CandidateQuote]) -> int:
        mean = sum((c.commission_split for c in priced), start=Decimal("0")) / len(priced)
        return COMMISSION_POINTS if candidate.commission_split >= mean else 0


# ---------------------------------------------------------------------------
# AI evaluation mode
# ---------------------------------------------------------------------------


class ScoringStrategy(Protocol):
    """Source of the AI score adjustment. Production uses RandomAdjustment."""

    def adjust(self, base: int) -> int:
        """Return the adjusted score for a base score."""
        ...

    def confidence(self) -> str:
        """Cosmetic confidence label, e.g. "87%"."""
        ...


class RandomAdjustment:
    """Uniform integer nudge in [-10, +10] with an 80–99% confidence label."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def adjust(self, base: int) -> int:
        return base + self._rng.randint(-MAX_AI_ADJUSTMENT, MAX_AI_ADJUSTMENT)

    def confidence(self) -> str:
        return f"{self._rng.randint(80, 99)}%"


def qualitative_labels(final_score: int, candidate: CandidateQuote, confidence: str) -> AiAnalysis:
    """Map a final score to the AI analysis labels shown to the broker."""
    if final_score >= 80:
        competitiveness, recommendation = "Excellent", "Highly recommended"
    elif final_score >= 70:
        competitiveness, recommendation = "Good", "Recommended"
    elif final_score >= 60:
        competitiveness, recommendation = "Average", "Consider with caution"
    else:
        competitiveness, recommendation = "Below Average", "Not recommended"

    if final_score >= 75:
        risk = "Low risk profile"
    elif final_score >= 50:
        risk = "Medium risk profile"
    else:
        risk = "High risk profile"

    terms = "Comprehensive terms reviewed" if candidate.terms_conditions else "Limited terms information"

    return AiAnalysis(
        premium_competitiveness=competitiveness,
        recommendation=recommendation,
        terms_analysis=terms,
        risk_assessment=risk,
        confidence=confidence,
    )


def ai_evaluate(
    pool: Sequence[CandidateQuote],
    strategy: ScoringStrategy | None = None,
    engine: RatingEngine | None = None,
) -> list[CandidateQuote]:
    """Score every candidate in AI mode and return updated copies, pool order kept.

    The strategy's delta is bounded to ±10 and the final score clamped to
    0..100 regardless of what the strategy returns.
    """
    strategy = strategy or RandomAdjustment()
    engine = engine or RatingEngine()

    results: list[CandidateQuote] = []
    for candidate in pool:
        base = engine.score(candidate, pool)
        delta = _clamp(strategy.adjust(base) - base, -MAX_AI_ADJUSTMENT, MAX_AI_ADJUSTMENT)
        final = _clamp(base + delta)
        results.append(candidate.model_copy(update={
            "rating_score": final,
            "ai_analysis": qualitative_labels(final, candidate, strategy.confidence()),
        }))
    return results


# Module-level singleton
rating_engine = RatingEngine()


def score(candidate: CandidateQuote, pool: Sequence[CandidateQuote]) -> int:
    """Shortcut for ``rating_engine.score``."""
    return rating_engine.score(candidate, pool)
