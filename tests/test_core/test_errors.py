"""Tests for the ledger error hierarchy."""

from __future__ import annotations

import pytest

from splitledger.errors import (
    ConcurrencyConflict,
    InvalidAmount,
    InvalidRequest,
    InvalidSplit,
    InvalidState,
    LedgerError,
    NotFound,
    Unauthorized,
)


@pytest.mark.parametrize(
    ("error_cls", "code"),
    [
        (InvalidSplit, "INVALID_SPLIT"),
        (InvalidAmount, "INVALID_AMOUNT"),
        (NotFound, "NOT_FOUND"),
        (Unauthorized, "UNAUTHORIZED"),
        (InvalidState, "INVALID_STATE"),
        (InvalidRequest, "INVALID_REQUEST"),
        (ConcurrencyConflict, "CONCURRENCY_CONFLICT"),
    ],
)
def test_stable_codes(error_cls: type[LedgerError], code: str) -> None:
    error = error_cls("something went wrong")
    assert error.code == code
    assert isinstance(error, LedgerError)


class TestLedgerError:
    def test_message_and_details(self) -> None:
        error = NotFound("Group not found.", details={"group_id": "g1"})
        assert str(error) == "Group not found."
        assert error.message == "Group not found."
        assert error.details == {"group_id": "g1"}

    def test_details_default_to_empty(self) -> None:
        assert InvalidSplit("bad").details == {}

    def test_raise_and_catch_as_base(self) -> None:
        with pytest.raises(LedgerError) as exc_info:
            raise InvalidState("not pending")
        assert exc_info.value.code == "INVALID_STATE"

    def test_hashable(self) -> None:
        error = Unauthorized("no")
        assert {error: 1}[error] == 1
