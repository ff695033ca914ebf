"""Workflow stage order and transition checks.

Stages only move forward. A write that keeps the current stage is a status
refresh and is always allowed, except out of the terminal ``converted``
stage, which accepts nothing.
"""

from __future__ import annotations

from quotedesk.errors import InvalidTransitionError
from quotedesk.models.enums import QuoteStatus, WorkflowStage

STAGE_ORDER: tuple[WorkflowStage, ...] = (
    WorkflowStage.RFQ_GENERATION,
    WorkflowStage.INSURER_MATCHING,
    WorkflowStage.QUOTE_EVALUATION,
    WorkflowStage.CLIENT_SELECTION,
    WorkflowStage.COMPLETED,
    WorkflowStage.CONVERTED,
)

TERMINAL_STAGES = frozenset({WorkflowStage.CONVERTED})

_POSITION = {stage: i for i, stage in enumerate(STAGE_ORDER)}


def position(stage: WorkflowStage) -> int:
    return _POSITION[stage]


def parse_stage(value: WorkflowStage | str) -> WorkflowStage:
    """Resolve a stage name. Raises InvalidTransitionError for unknown names."""
    try:
        return WorkflowStage(value)
    except ValueError:
        msg = f"Unknown workflow stage: {value!r} (valid: {[s.value for s in STAGE_ORDER]})"
        raise InvalidTransitionError(msg, to_stage=str(value)) from None


def parse_status(value: QuoteStatus | str) -> QuoteStatus:
    """Resolve a status name. Raises InvalidTransitionError for unknown names."""
    try:
        return QuoteStatus(value)
    except ValueError:
        msg = f"Unknown quote status: {value!r} (valid: {[s.value for s in QuoteStatus]})"
        raise InvalidTransitionError(msg) from None


def can_transition(current: WorkflowStage, target: WorkflowStage) -> bool:
    """Check if ``current`` may be written as ``target``."""
    if current in TERMINAL_STAGES:
        return False
    return position(target) >= position(current)


def check_transition(current: WorkflowStage, target: WorkflowStage) -> None:
    """Raise InvalidTransitionError unless ``current → target`` is allowed."""
    if not can_transition(current, target):
        msg = f"Invalid transition: {current.value} --> {target.value} (stages only move forward)"
        raise InvalidTransitionError(msg, from_stage=current.value, to_stage=target.value)
