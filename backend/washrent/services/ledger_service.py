# Overview: Service-layer operations for the channel ledger; read-only balance reconstruction.

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from ..domain import ALL_CHANNELS, Channel, Direction, Movement, SourceCategory
from ..time_utils import end_of_day, end_of_previous_day, start_of_day, utcnow
from .movement_sources import read_all_sources

"""
Channel Ledger Invariants (authoritative)

- Balances are NEVER stored. Every balance is recomputed from the movement
  set it summarizes, so any figure shown can be reproduced.
- balance(c, t) = sum(signed_amount(m)) for m.channel == c and m.timestamp <= t.
- As-of filtering is inclusive: timestamp <= cutoff.
- Range filtering is inclusive on both ends: start <= timestamp <= end.
  A None bound means unbounded on that side.
- Channels are independent ledgers; there is no ordering across channels.
- Nothing in this module writes. It is safe to call on every refresh and
  before every authorization check.
"""

# Smallest step between two distinct timestamps; "start minus" is start - EPSILON.
EPSILON = timedelta(microseconds=1)


def _sorted(movements: list[Movement]) -> list[Movement]:
    return sorted(movements, key=lambda m: m.sort_key)


def _in_window(m: Movement, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and m.timestamp < start:
        return False
    if end is not None and m.timestamp > end:
        return False
    return True


def all_movements(channel: Channel) -> list[Movement]:
    """Every movement of a channel, ascending by timestamp."""
    return _sorted(read_all_sources(channel))


def movements_in_range(
    channel: Channel,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[Movement]:
    """
    Movements of ``channel`` with start <= timestamp <= end, ascending.

    Ties on timestamp are broken by source category, then source id, so the
    order is stable across calls.
    """
    return [m for m in all_movements(channel) if _in_window(m, start, end)]


def balance_as_of(channel: Channel, cutoff: Optional[datetime] = None) -> int:
    """
    Signed sum of every movement with timestamp <= cutoff (cutoff defaults to now).

    Future-dated movements only count once their timestamp is reached.
    """
    cutoff = cutoff or utcnow()
    return sum(m.signed_amount for m in read_all_sources(channel) if m.timestamp <= cutoff)


def balance_in_range(
    channel: Channel,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> int:
    """Net change over [start, end]; equals balance_as_of(end) - balance_as_of(start - EPSILON)."""
    return sum(m.signed_amount for m in movements_in_range(channel, start, end))


def balance_up_to_yesterday(channel: Channel, now: Optional[datetime] = None) -> int:
    """Balance at the end-of-day instant of the previous UTC day."""
    return balance_as_of(channel, end_of_previous_day(now))


def current_balances(now: Optional[datetime] = None) -> dict[Channel, int]:
    now = now or utcnow()
    return {channel: balance_as_of(channel, now) for channel in ALL_CHANNELS}


def day_bounds(day: date | datetime) -> tuple[datetime, datetime]:
    return start_of_day(day), end_of_day(day)


def channel_statement(
    channel: Channel,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    """
    Balance history for one channel over [start, end].

    Returns:
        - opening_balance_cents: balance at the instant before ``start``
          (0 when start is None)
        - movements: period movements, each with its running balance
        - total_in_cents / total_out_cents
        - closing_balance_cents: opening + net period change
        - by_source: net change per source category (display only)

    All figures come from one read of the sources, so opening + period
    always equals closing.
    """
    movements = all_movements(channel)

    opening = 0
    if start is not None:
        opening = sum(m.signed_amount for m in movements if m.timestamp <= start - EPSILON)

    period = [m for m in movements if _in_window(m, start, end)]

    running = opening
    rows = []
    total_in = 0
    total_out = 0
    by_source = {category.value: 0 for category in SourceCategory}
    for m in period:
        running += m.signed_amount
        if m.direction is Direction.CREDIT:
            total_in += m.amount
        else:
            total_out += m.amount
        by_source[m.source_category.value] += m.signed_amount
        row = m.to_dict()
        row["running_balance_cents"] = running
        rows.append(row)

    return {
        "channel": channel.value,
        "channel_name": channel.display_name,
        "opening_balance_cents": opening,
        "total_in_cents": total_in,
        "total_out_cents": total_out,
        "closing_balance_cents": opening + total_in - total_out,
        "movement_count": len(rows),
        "by_source": by_source,
        "movements": rows,
    }
