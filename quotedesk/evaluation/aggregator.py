"""Candidate pool builder — merges dispatched insurers with manual entries.

Holds two parallel, independently mutable pools that share the
CandidateQuote shape. Every in-place edit is addressed by pool (source) and
position, the same way the evaluation screen edits a row.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from quotedesk.evaluation.rating import RatingEngine, ScoringStrategy, ai_evaluate, rating_engine
from quotedesk.models.enums import CandidateSource
from quotedesk.schemas.quotes import (
    CandidateQuote,
    DispatchedInsurer,
    EmailQuoteResponse,
    ExtractedQuoteData,
    PoolSummary,
)

logger = logging.getLogger(__name__)

_FIXED_FIELDS = frozenset({"key", "source"})


def _generated_key(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def candidate_from_dispatch(insurer: DispatchedInsurer | Mapping[str, Any]) -> CandidateQuote:
    """Seed an unanswered candidate from one RFQ dispatch record."""
    if not isinstance(insurer, DispatchedInsurer):
        insurer = DispatchedInsurer.model_validate(insurer)
    return CandidateQuote(
        key=insurer.insurer_id or _generated_key("insurer"),
        insurer_id=insurer.insurer_id,
        insurer_name=insurer.insurer_name,
        insurer_email=insurer.insurer_email,
        commission_split=insurer.commission_split,
        dispatched_at=insurer.dispatched_at,
        source=CandidateSource.DISPATCHED,
    )


class QuoteAggregator:
    """Working pool for one quote's evaluation session."""

    def __init__(
        self,
        quote_id: uuid.UUID,
        dispatched: list[CandidateQuote] | None = None,
        manual: list[CandidateQuote] | None = None,
    ) -> None:
        self.quote_id = quote_id
        self._pools: dict[CandidateSource, list[CandidateQuote]] = {
            CandidateSource.DISPATCHED: list(dispatched or []),
            CandidateSource.MANUAL: list(manual or []),
        }

    @classmethod
    def from_dispatch(
        cls,
        quote_id: uuid.UUID,
        dispatched: Iterable[DispatchedInsurer | Mapping[str, Any]] | None,
    ) -> QuoteAggregator:
        """Build the dispatched pool. Empty or missing input yields an empty pool.

        An insurer dispatched twice is seeded once; the first record wins.
        """
        candidates: list[CandidateQuote] = []
        seen: set[str] = set()
        for record in dispatched or []:
            candidate = candidate_from_dispatch(record)
            if candidate.key in seen:
                logger.warning("Quote %s: insurer %s dispatched more than once", quote_id, candidate.key)
                continue
            seen.add(candidate.key)
            candidates.append(candidate)
        logger.debug("Pool for quote %s seeded with %d dispatched insurers", quote_id, len(candidates))
        return cls(quote_id, dispatched=candidates)

    # ── Views ────────────────────────────────────────────────────────

    @property
    def dispatched(self) -> list[CandidateQuote]:
        return self._pools[CandidateSource.DISPATCHED]

    @property
    def manual(self) -> list[CandidateQuote]:
        return self._pools[CandidateSource.MANUAL]

    @property
    def candidates(self) -> list[CandidateQuote]:
        """Combined pool: dispatched first, then manual."""
        return [*self.dispatched, *self.manual]

    def pool(self, source: CandidateSource) -> list[CandidateQuote]:
        return self._pools[CandidateSource(source)]

    # ── Mutations ────────────────────────────────────────────────────

    def add_manual(self, **fields: Any) -> int:
        """Append a manual candidate and return its position.

        A new entry gets a generated key; a key carried over from an earlier
        session (e.g. a round-trip through the API) is kept unless another
        candidate in either pool already holds it.
        """
        key = fields.pop("key", None)
        if key and any(c.key == key for c in self.candidates):
            logger.warning("Quote %s: manual key %s already in the pool, re-keyed", self.quote_id, key)
            key = None
        key = key or _generated_key("manual")
        fields.pop("source", None)
        candidate = CandidateQuote(key=key, source=CandidateSource.MANUAL, **fields)
        self.manual.append(candidate)
        return len(self.manual) - 1

    def remove_manual(self, index: int) -> CandidateQuote:
        """Remove a manual candidate by position. Raises IndexError when out of range."""
        if not 0 <= index < len(self.manual):
            msg = f"No manual candidate at position {index}"
            raise IndexError(msg)
        return self.manual.pop(index)

    def update(self, source: CandidateSource, index: int, **fields: Any) -> CandidateQuote:
        """Replace fields on the candidate at ``pool[index]``; values are re-validated."""
        fixed = _FIXED_FIELDS.intersection(fields)
        if fixed:
            msg = f"Candidate fields cannot be changed: {sorted(fixed)}"
            raise ValueError(msg)
        pool = self.pool(source)
        if not 0 <= index < len(pool):
            msg = f"No {CandidateSource(source).value} candidate at position {index}"
            raise IndexError(msg)
        updated = CandidateQuote.model_validate({**pool[index].model_dump(), **fields})
        pool[index] = updated
        return updated

    def attach_document(
        self,
        source: CandidateSource,
        index: int,
        document_url: str,
        extracted: ExtractedQuoteData | None = None,
    ) -> CandidateQuote:
        """Record an uploaded quote document and prefill any extracted offer data."""
        fields: dict[str, Any] = {"document_url": document_url, "response_received": True}
        if extracted is not None:
            fields.update(extracted.model_dump(exclude_none=True))
        return self.update(source, index, **fields)

    def apply_email_response(self, response: EmailQuoteResponse) -> int | None:
        """Match an emailed response to a dispatched insurer by name and apply it.

        Names match case-insensitively when either contains the other. The
        first match wins; returns its position, or None when nothing matches.
        """
        wanted = response.insurer_name.strip().lower()
        if not wanted:
            return None
        for index, candidate in enumerate(self.dispatched):
            name = candidate.insurer_name.strip().lower()
            if name and (wanted in name or name in wanted):
                self.update(
                    CandidateSource.DISPATCHED,
                    index,
                    premium_quoted=response.premium_quoted,
                    terms_conditions=response.terms_conditions or "",
                    exclusions=response.exclusions or [],
                    coverage_limits=response.coverage_limits or {},
                    document_url=response.document_url,
                    response_date=response.response_date,
                    response_received=True,
                )
                logger.info("Email quote from %s applied to candidate %s", response.insurer_name, candidate.key)
                return index
        logger.warning("Email quote from %s matched no dispatched insurer", response.insurer_name)
        return None

    # ── Scoring ──────────────────────────────────────────────────────

    def auto_rate(self, engine: RatingEngine | None = None) -> list[CandidateQuote]:
        """Fill ``rating_score`` on every candidate against the combined pool."""
        engine = engine or rating_engine
        combined = self.candidates
        for source in CandidateSource:
            pool = self._pools[source]
            pool[:] = [c.model_copy(update={"rating_score": engine.score(c, combined)}) for c in pool]
        return self.candidates

    def apply_ai_evaluation(
        self,
        strategy: ScoringStrategy | None = None,
        engine: RatingEngine | None = None,
    ) -> list[CandidateQuote]:
        """Run AI evaluation mode and write results back to each pool by source."""
        results = ai_evaluate(self.candidates, strategy=strategy, engine=engine)
        for source in CandidateSource:
            self._pools[source] = [c for c in results if c.source == source]
        return results

    def summary(self) -> PoolSummary:
        combined = self.candidates
        received = sum(1 for c in combined if c.response_received)
        forwardable = [c for c in combined if c.is_forwardable]
        best = max(forwardable, key=lambda c: c.rating_score or 0) if forwardable else None
        return PoolSummary(
            total_dispatched=len(self.dispatched),
            total_manual=len(self.manual),
            total_received=received,
            total_pending=len(combined) - received,
            best_candidate=best,
        )


def aggregate(
    dispatched: Iterable[DispatchedInsurer | Mapping[str, Any]] | None,
    manual: Iterable[CandidateQuote | Mapping[str, Any]] | None = None,
    quote_id: uuid.UUID | None = None,
) -> QuoteAggregator:
    """Build a pool from dispatch records plus already-entered manual candidates."""
    aggregator = QuoteAggregator.from_dispatch(quote_id or uuid.uuid4(), dispatched)
    for entry in manual or []:
        data = entry.model_dump() if isinstance(entry, CandidateQuote) else dict(entry)
        aggregator.add_manual(**data)
    return aggregator
