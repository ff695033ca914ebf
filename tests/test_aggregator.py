"""Tests for quotedesk/evaluation/aggregator.py — building and editing the candidate pool."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from quotedesk.evaluation.aggregator import QuoteAggregator, aggregate, candidate_from_dispatch
from quotedesk.models.enums import CandidateSource
from quotedesk.schemas.quotes import CandidateQuote, EmailQuoteResponse, ExtractedQuoteData

QUOTE_ID = uuid.uuid4()


def _dispatch(insurer_id: str | None, name: str, split: str = "10") -> dict:
    return {
        "insurer_id": insurer_id,
        "insurer_name": name,
        "insurer_email": f"{name.split()[0].lower()}@insurer.example",
        "commission_split": split,
        "dispatched_at": datetime(2026, 10, 1, 9, 0, tzinfo=UTC),
    }


def _make_aggregator() -> QuoteAggregator:
    return QuoteAggregator.from_dispatch(
        QUOTE_ID,
        [
            _dispatch("leadway", "Leadway Assurance"),
            _dispatch("axa", "AXA Mansard Insurance"),
        ],
    )


class TestFromDispatch:
    def test_seeds_unanswered_candidates(self):
        agg = _make_aggregator()
        assert [c.key for c in agg.dispatched] == ["leadway", "axa"]
        first = agg.dispatched[0]
        assert first.source == CandidateSource.DISPATCHED
        assert first.response_received is False
        assert first.premium_quoted == Decimal("0")
        assert first.rating_score is None
        assert first.commission_split == Decimal("10")

    @pytest.mark.parametrize("dispatched", [None, []])
    def test_empty_input_yields_empty_pool(self, dispatched):
        agg = QuoteAggregator.from_dispatch(QUOTE_ID, dispatched)
        assert agg.candidates == []

    def test_missing_insurer_id_gets_generated_key(self):
        a = candidate_from_dispatch(_dispatch(None, "Custodian"))
        b = candidate_from_dispatch(_dispatch(None, "Custodian"))
        assert a.key.startswith("insurer-")
        assert a.key != b.key

    def test_repeated_insurer_seeded_once(self):
        agg = QuoteAggregator.from_dispatch(
            QUOTE_ID,
            [_dispatch("axa", "AXA Mansard Insurance"), _dispatch("axa", "AXA Mansard (resend)", split="5")],
        )
        assert [c.key for c in agg.dispatched] == ["axa"]
        assert agg.dispatched[0].insurer_name == "AXA Mansard Insurance"
        assert agg.dispatched[0].commission_split == Decimal("10")


class TestManualPool:
    def test_add_manual_returns_index_and_unique_keys(self):
        agg = _make_aggregator()
        first = agg.add_manual(insurer_name="Cornerstone", premium_quoted="1,200,000")
        second = agg.add_manual(insurer_name="Sovereign Trust")
        assert (first, second) == (0, 1)
        keys = [c.key for c in agg.manual]
        assert all(k.startswith("manual-") for k in keys)
        assert len(set(keys)) == 2
        assert agg.manual[0].premium_quoted == Decimal("1200000")
        assert agg.manual[0].source == CandidateSource.MANUAL

    def test_add_manual_keeps_existing_key(self):
        agg = _make_aggregator()
        agg.add_manual(key="manual-abc", insurer_name="Cornerstone", source="dispatched")
        assert agg.manual[0].key == "manual-abc"
        assert agg.manual[0].source == CandidateSource.MANUAL

    def test_add_manual_rekeys_key_already_in_pool(self):
        agg = _make_aggregator()
        agg.add_manual(key="axa", insurer_name="AXA Mansard (manual)")
        agg.add_manual(key="manual-abc", insurer_name="Cornerstone")
        agg.add_manual(key="manual-abc", insurer_name="Sovereign Trust")
        keys = [c.key for c in agg.candidates]
        assert len(set(keys)) == len(keys) == 5
        assert agg.manual[0].key.startswith("manual-")
        assert agg.manual[1].key == "manual-abc"
        assert agg.manual[2].key != "manual-abc"

    def test_combined_view_dispatched_first(self):
        agg = _make_aggregator()
        agg.add_manual(insurer_name="Cornerstone")
        assert [c.source for c in agg.candidates] == [
            CandidateSource.DISPATCHED,
            CandidateSource.DISPATCHED,
            CandidateSource.MANUAL,
        ]

    def test_remove_manual(self):
        agg = _make_aggregator()
        agg.add_manual(insurer_name="Cornerstone")
        agg.add_manual(insurer_name="Sovereign Trust")
        removed = agg.remove_manual(0)
        assert removed.insurer_name == "Cornerstone"
        assert [c.insurer_name for c in agg.manual] == ["Sovereign Trust"]

    def test_remove_manual_out_of_range(self):
        agg = _make_aggregator()
        with pytest.raises(IndexError):
            agg.remove_manual(0)


class TestUpdate:
    def test_update_revalidates_fields(self):
        agg = _make_aggregator()
        updated = agg.update(
            CandidateSource.DISPATCHED,
            1,
            premium_quoted="3,000,000",
            exclusions=["flood", "flood", "riot"],
            response_received=True,
        )
        assert updated.premium_quoted == Decimal("3000000")
        assert updated.exclusions == ["flood", "riot"]
        assert agg.dispatched[1] is updated

    def test_update_rejects_invalid_values(self):
        agg = _make_aggregator()
        with pytest.raises(PydanticValidationError):
            agg.update(CandidateSource.DISPATCHED, 0, commission_split=Decimal("150"))

    def test_update_cannot_change_identity(self):
        agg = _make_aggregator()
        with pytest.raises(ValueError, match="key"):
            agg.update(CandidateSource.DISPATCHED, 0, key="other")

    def test_update_out_of_range(self):
        agg = _make_aggregator()
        with pytest.raises(IndexError):
            agg.update(CandidateSource.MANUAL, 0, premium_quoted=1)

    def test_attach_document_prefills_extracted_data(self):
        agg = _make_aggregator()
        extracted = ExtractedQuoteData(
            premium_quoted="2,750,000",
            terms_conditions="Comprehensive motor cover with windscreen extension",
            coverage_limits={"third_party": "5,000,000"},
        )
        c = agg.attach_document(CandidateSource.DISPATCHED, 0, "s3://docs/leadway.pdf", extracted)
        assert c.document_url == "s3://docs/leadway.pdf"
        assert c.response_received is True
        assert c.premium_quoted == Decimal("2750000")
        assert c.coverage_limits == {"third_party": Decimal("5000000")}
        assert c.exclusions == []

    def test_attach_document_without_extraction(self):
        agg = _make_aggregator()
        c = agg.attach_document(CandidateSource.DISPATCHED, 1, "s3://docs/axa.pdf")
        assert c.response_received is True
        assert c.premium_quoted == Decimal("0")


class TestEmailResponses:
    def test_matches_by_name_containment(self):
        agg = _make_aggregator()
        response = EmailQuoteResponse(insurer_name="axa mansard", premium_quoted="4,100,000")
        assert agg.apply_email_response(response) == 1
        c = agg.dispatched[1]
        assert c.premium_quoted == Decimal("4100000")
        assert c.response_received is True

    def test_sender_name_may_contain_insurer_name(self):
        agg = _make_aggregator()
        response = EmailQuoteResponse(insurer_name="Quotes Desk - Leadway Assurance Plc", premium_quoted=1)
        assert agg.apply_email_response(response) == 0

    def test_no_match_returns_none(self):
        agg = _make_aggregator()
        response = EmailQuoteResponse(insurer_name="NEM Insurance", premium_quoted=1)
        assert agg.apply_email_response(response) is None
        assert all(not c.response_received for c in agg.dispatched)


class TestScoring:
    def _answered(self) -> QuoteAggregator:
        agg = _make_aggregator()
        agg.update(CandidateSource.DISPATCHED, 0, premium_quoted=2_000_000, response_received=True)
        agg.update(CandidateSource.DISPATCHED, 1, premium_quoted=3_000_000, response_received=True)
        agg.add_manual(insurer_name="Cornerstone", premium_quoted=2_500_000, response_received=True)
        return agg

    def test_auto_rate_scores_against_combined_pool(self):
        agg = self._answered()
        rated = agg.auto_rate()
        assert all(c.rating_score is not None for c in rated)
        # cheapest gets the full premium component, dearest none
        assert agg.dispatched[0].rating_score > agg.manual[0].rating_score > agg.dispatched[1].rating_score

    def test_ai_evaluation_written_back_by_source(self):
        class Flat:
            def adjust(self, base: int) -> int:
                return base

            def confidence(self) -> str:
                return "88%"

        agg = self._answered()
        results = agg.apply_ai_evaluation(strategy=Flat())
        assert len(results) == 3
        assert len(agg.dispatched) == 2
        assert len(agg.manual) == 1
        assert agg.manual[0].ai_analysis.confidence == "88%"

    def test_summary(self):
        agg = self._answered()
        agg.add_manual(insurer_name="Pending Co")
        agg.auto_rate()
        summary = agg.summary()
        assert summary.total_dispatched == 2
        assert summary.total_manual == 2
        assert summary.total_received == 3
        assert summary.total_pending == 1
        assert summary.best_candidate.key == "leadway"

    def test_summary_without_responses(self):
        summary = _make_aggregator().summary()
        assert summary.best_candidate is None
        assert summary.total_pending == 2


class TestAggregate:
    def test_merges_dispatch_and_manual(self):
        manual = [CandidateQuote(key="manual-1", insurer_name="Cornerstone", source="manual")]
        agg = aggregate([_dispatch("leadway", "Leadway Assurance")], manual, quote_id=QUOTE_ID)
        assert agg.quote_id == QUOTE_ID
        assert [c.key for c in agg.candidates] == ["leadway", "manual-1"]
