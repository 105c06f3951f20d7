"""Logging setup and ledger mutation hooks.

Every ledger entry produces a :class:`LedgerEvent`.  Events are handed to
the hooks of a :class:`HookRegistry` once the transaction that wrote the
entry has committed, so a hook never observes a mutation that was rolled
back.

Usage::

    hooks = HookRegistry()

    @hooks.on(LedgerEventType.SETTLEMENT_CONFIRMED)
    def notify(event: LedgerEvent) -> None:
        ...

    ledger = BalanceLedger(session_factory, hooks=hooks)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from splitledger.config import settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Hooks registered under this key receive every event type.
ALL_EVENTS = "*"


def configure_logging(level: int | None = None) -> None:
    """Configure root logging for a host process.

    Uses DEBUG when ``settings.debug`` is set and no explicit *level* is
    given, INFO otherwise.
    """
    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


@dataclass(frozen=True)
class LedgerEvent:
    """A committed balance-affecting event.

    Attributes:
        event_type: A :class:`~splitledger.ledger.models.LedgerEventType` value.
        group_id: Group whose balances changed.
        entry_id: ID of the ledger entry that was appended.
        deltas: Per-member change applied by the entry.
        balances: Every member's balance after the entry.
        source_id: The expense or settlement the entry belongs to.
    """

    event_type: str
    group_id: uuid.UUID
    entry_id: uuid.UUID
    deltas: Mapping[int, Decimal] = field(default_factory=dict)
    balances: Mapping[int, Decimal] = field(default_factory=dict)
    source_id: uuid.UUID | None = None


LedgerHook = Callable[[LedgerEvent], None]


class HookRegistry:
    """Observers notified of committed ledger events."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[LedgerHook]] = {}

    def on(self, event_type: str = ALL_EVENTS) -> Callable[[LedgerHook], LedgerHook]:
        """Decorator to register a hook for *event_type* (default: all).

        Returns:
            The original function, unmodified.
        """

        def decorator(func: LedgerHook) -> LedgerHook:
            self.register(event_type, func)
            return func

        return decorator

    def register(self, event_type: str, hook: LedgerHook) -> None:
        """Imperatively register a hook (alternative to the decorator)."""
        key = str(event_type)
        hooks = self._hooks.setdefault(key, [])
        if hook in hooks:
            raise ValueError(f"Hook {hook!r} is already registered for '{key}'")
        hooks.append(hook)
        logger.debug("Registered ledger hook %s for %s", getattr(hook, "__name__", hook), key)

    def hooks_for(self, event_type: str) -> list[LedgerHook]:
        """Return the hooks that receive *event_type*, specific ones first."""
        return [*self._hooks.get(str(event_type), []), *self._hooks.get(ALL_EVENTS, [])]

    def dispatch(self, event: LedgerEvent) -> None:
        """Run every hook for *event*.

        A hook that raises is logged with its traceback; the remaining
        hooks still run.  The ledger entry is already committed.
        """
        for hook in self.hooks_for(event.event_type):
            try:
                hook(event)
            except Exception:
                logger.exception(
                    "Ledger hook %s failed for %s entry %s",
                    getattr(hook, "__name__", hook),
                    event.event_type,
                    event.entry_id,
                )


def log_ledger_event(event: LedgerEvent) -> None:
    """Default hook: one structured log record per ledger entry."""
    logger.info(
        "ledger %s group=%s entry=%s source=%s deltas=%s",
        event.event_type,
        event.group_id,
        event.entry_id,
        event.source_id,
        {member: str(amount) for member, amount in event.deltas.items()},
        extra={
            "ledger_event": event.event_type,
            "group_id": str(event.group_id),
            "entry_id": str(event.entry_id),
        },
    )
    logger.debug(
        "ledger balances group=%s %s",
        event.group_id,
        {member: str(amount) for member, amount in event.balances.items()},
    )


# ── Global registry instance ──────────────────────────────────────────────────

default_hooks = HookRegistry()
default_hooks.register(ALL_EVENTS, log_ledger_event)
