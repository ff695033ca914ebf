"""Exception taxonomy for quote evaluation and workflow operations.

Validation errors are raised before anything is persisted. Remote service
errors wrap a persistence or stage-progression failure that survived the
retry policy. Data integrity problems are never raised; they are emitted as
``reconciliation.*`` events and logged.
"""

from __future__ import annotations

import uuid


class QuoteDeskError(Exception):
    """Base class for all domain errors."""


class ValidationError(QuoteDeskError, ValueError):
    """Caller-visible input problem; the operation aborted before any write."""


class NoValidQuotesError(ValidationError):
    """No candidate has both a received response and a positive premium."""

    def __init__(self, quote_id: uuid.UUID | str) -> None:
        self.quote_id = quote_id
        super().__init__(f"No valid quotes to forward for quote {quote_id}")


class InvalidTransitionError(ValidationError):
    """Unknown stage/status name, or a move against the forward-only stage order."""

    def __init__(self, message: str, *, from_stage: str | None = None, to_stage: str | None = None) -> None:
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(message)


class ConversionNotAllowedError(ValidationError):
    """Quote does not satisfy the conversion-eligibility predicate."""

    def __init__(self, quote_id: uuid.UUID | str, failures: list[str]) -> None:
        self.quote_id = quote_id
        self.failures = failures
        super().__init__(f"Quote {quote_id} cannot be converted: {', '.join(failures)}")


class QuoteNotFoundError(QuoteDeskError, LookupError):
    """No quote exists with the given id."""

    def __init__(self, quote_id: uuid.UUID | str) -> None:
        self.quote_id = quote_id
        super().__init__(f"Quote {quote_id} not found")


class RemoteServiceError(QuoteDeskError):
    """A persistence or stage-progression call failed after retries."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")
