"""Error kinds raised by the ledger core.

Every error is a caller/input error returned synchronously; none of them is
retried internally.  The one exception is :class:`ConcurrencyConflict`,
which the ledger raises only after its own retries are exhausted.

Each class carries a stable ``code`` so the calling layer can map it to
whatever transport-level representation it uses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class LedgerError(Exception):
    """Base class for predictable ledger failures."""

    message: str
    details: dict[str, Any] = field(default_factory=dict)

    code = "LEDGER_ERROR"

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class InvalidSplit(LedgerError):
    """Split weights are unusable (percentages off 100, zero total shares...)."""

    code = "INVALID_SPLIT"


class InvalidAmount(LedgerError):
    """A monetary amount is non-positive or has sub-cent precision."""

    code = "INVALID_AMOUNT"


class NotFound(LedgerError):
    """Unknown group, member, expense or settlement."""

    code = "NOT_FOUND"


class Unauthorized(LedgerError):
    """The acting user may not perform this transition."""

    code = "UNAUTHORIZED"


class InvalidState(LedgerError):
    """The record is not in a state that allows the requested transition."""

    code = "INVALID_STATE"


class InvalidRequest(LedgerError):
    """Structurally invalid request not covered by the other kinds."""

    code = "INVALID_REQUEST"


class ConcurrencyConflict(LedgerError):
    """Concurrent writers kept winning; the ledger gave up retrying."""

    code = "CONCURRENCY_CONFLICT"
