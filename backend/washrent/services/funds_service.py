# Overview: Funds authorization; decides which channels can cover a debit.

"""
Funds Authorization

WHY: A channel is a physical pot of money (cash box, wallet). A debit may
only be authorized against a channel whose current balance covers it.

SEMANTICS:
- Checks are advisory at evaluation time. Writers re-validate at commit time
  (see maintenance_service.open_maintenance) because balances can change
  in between.
- A negative verdict is a normal branch, not an error.
- A failed or timed-out ledger read propagates as TransientStoreError.
  It is never treated as "balance = 0" or "insufficient".
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..domain import ALL_CHANNELS, Channel
from ..errors import InsufficientFunds, ValidationError
from . import ledger_service


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount_cents must be an integer")
    if amount < 0:
        raise ValidationError("amount_cents must not be negative")


def is_sufficient(channel: Channel, amount: int, now: Optional[datetime] = None) -> bool:
    _validate_amount(amount)
    return ledger_service.balance_as_of(channel, now) >= amount


def check(channel: Channel, amount: int, now: Optional[datetime] = None) -> tuple[bool, int]:
    """(sufficient, balance) from a single ledger read."""
    _validate_amount(amount)
    balance = ledger_service.balance_as_of(channel, now)
    return balance >= amount, balance


def require_sufficient(channel: Channel, amount: int, now: Optional[datetime] = None) -> int:
    """
    Raise InsufficientFunds unless ``channel`` covers ``amount``.

    Returns the balance that was checked.
    """
    _validate_amount(amount)
    balance = ledger_service.balance_as_of(channel, now)
    if balance < amount:
        raise InsufficientFunds(channel, required=amount, available=balance)
    return balance


def eligible_channels(amount: int, now: Optional[datetime] = None) -> list[Channel]:
    """
    Channels that can cover ``amount``, in canonical order (cash, nequi, daviplata).

    An empty list means the caller must block the action entirely.
    """
    _validate_amount(amount)
    balances = ledger_service.current_balances(now)
    return [channel for channel in ALL_CHANNELS if balances[channel] >= amount]


def reassign_channel(
    selected: Optional[Channel],
    amount: int,
    now: Optional[datetime] = None,
    *,
    eligible: Optional[list[Channel]] = None,
) -> Optional[Channel]:
    """
    Keep ``selected`` if it still covers ``amount``, otherwise fall back to the
    first eligible channel. Returns None when no channel is eligible.

    Pass ``eligible`` to reuse an answer already read from the ledger.
    """
    if eligible is None:
        eligible = eligible_channels(amount, now)
    if selected in eligible:
        return selected
    return eligible[0] if eligible else None
