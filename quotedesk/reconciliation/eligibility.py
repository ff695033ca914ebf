"""Conversion-eligibility predicate for canonical quotes.

Pure Python, no DB access. ``validation_failures`` names every condition a
quote misses so callers can log or report them; an empty list means the
quote may be converted into a policy.
"""

from __future__ import annotations

from decimal import Decimal

from quotedesk.models import UNDERWRITER_TBD, Quote, WorkflowStage


def _missing_underwriter(underwriter: str | None) -> bool:
    return underwriter is None or underwriter.strip() in ("", UNDERWRITER_TBD)


def integrity_failures(quote: Quote) -> list[str]:
    """Data problems that backfill is expected to have repaired."""
    failures: list[str] = []
    if (quote.premium or Decimal("0")) <= 0:
        failures.append("premium")
    if (quote.sum_insured or Decimal("0")) <= 0:
        failures.append("sum_insured")
    if _missing_underwriter(quote.underwriter):
        failures.append("underwriter")
    if not (quote.client_name or "").strip():
        failures.append("client_name")
    return failures


def validation_failures(quote: Quote) -> list[str]:
    """Every unmet conversion condition, in a stable order."""
    failures = integrity_failures(quote)
    if quote.workflow_stage != WorkflowStage.COMPLETED.value:
        failures.append("workflow_stage")
    if not quote.final_contract_url:
        failures.append("final_contract_url")
    if quote.converted_to_policy is not None:
        failures.append("converted_to_policy")
    return failures


def is_conversion_eligible(quote: Quote) -> bool:
    return not validation_failures(quote)
