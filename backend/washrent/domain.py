"""
Closed enumerations and value objects shared by the ledger and equipment services.

Channels and states are never free-form strings inside the services: callers
convert at the boundary with the ``parse_*`` helpers, which raise
ValidationError on unknown values.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .errors import ValidationError
from .time_utils import to_utc_z


class Channel(str, Enum):
    """Payment media; each one is an independent sub-ledger."""

    CASH = "cash"
    NEQUI = "nequi"
    DAVIPLATA = "daviplata"

    @property
    def display_name(self) -> str:
        return _CHANNEL_NAMES[self]


_CHANNEL_NAMES = {
    Channel.CASH: "Efectivo",
    Channel.NEQUI: "Nequi",
    Channel.DAVIPLATA: "Daviplata",
}

# Canonical ranking order for eligible_channels()
ALL_CHANNELS: tuple[Channel, ...] = (Channel.CASH, Channel.NEQUI, Channel.DAVIPLATA)


class Direction(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class SourceCategory(str, Enum):
    """Where a movement came from. Display/audit only, never used in balance math."""

    ORDER_PAYMENT = "order_payment"
    CAPITAL_EVENT = "capital_event"
    EXPENSE = "expense"
    MAINTENANCE_COST = "maintenance_cost"


# Tie-break order for movements sharing a timestamp
SOURCE_ORDER = {
    SourceCategory.CAPITAL_EVENT: 0,
    SourceCategory.ORDER_PAYMENT: 1,
    SourceCategory.EXPENSE: 2,
    SourceCategory.MAINTENANCE_COST: 3,
}

MOVEMENT_ID_PREFIX = {
    SourceCategory.ORDER_PAYMENT: "payment",
    SourceCategory.CAPITAL_EVENT: "capital",
    SourceCategory.EXPENSE: "expense",
    SourceCategory.MAINTENANCE_COST: "maintenance",
}


class EquipmentState(str, Enum):
    AVAILABLE = "available"
    RENTED = "rented"
    IN_MAINTENANCE = "in_maintenance"
    OUT_OF_SERVICE = "out_of_service"
    RETIRED = "retired"


class EquipmentLocation(str, Enum):
    WAREHOUSE = "warehouse"
    CUSTOMER = "customer"
    WORKSHOP = "workshop"


LOCATION_FOR_STATE = {
    EquipmentState.AVAILABLE: EquipmentLocation.WAREHOUSE,
    EquipmentState.RENTED: EquipmentLocation.CUSTOMER,
    EquipmentState.IN_MAINTENANCE: EquipmentLocation.WORKSHOP,
    EquipmentState.OUT_OF_SERVICE: EquipmentLocation.WAREHOUSE,
    EquipmentState.RETIRED: EquipmentLocation.WAREHOUSE,
}


class OrderStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.PICKED_UP, OrderStatus.CANCELLED)


class CapitalKind(str, Enum):
    INITIAL = "initial"
    INJECTION = "injection"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class Movement:
    """
    One immutable signed financial fact posted to exactly one channel.

    ``amount`` is always a non-negative magnitude in cents; the sign comes
    from ``direction``.
    """

    id: str
    timestamp: datetime
    channel: Channel
    direction: Direction
    amount: int
    source_category: SourceCategory
    source_id: int
    concept: str = ""
    description: str | None = None
    reference: str | None = None
    timestamp_fallback: bool = False

    @property
    def signed_amount(self) -> int:
        return self.amount if self.direction is Direction.CREDIT else -self.amount

    @property
    def sort_key(self) -> tuple:
        return (self.timestamp, SOURCE_ORDER[self.source_category], self.source_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": to_utc_z(self.timestamp),
            "channel": self.channel.value,
            "direction": self.direction.value,
            "amount_cents": self.amount,
            "signed_amount_cents": self.signed_amount,
            "source_category": self.source_category.value,
            "source_id": self.source_id,
            "concept": self.concept,
            "description": self.description,
            "reference": self.reference,
            "timestamp_fallback": self.timestamp_fallback,
        }


def _parse_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def parse_channel(value, field: str = "channel") -> Channel:
    return _parse_enum(Channel, value, field)


def parse_equipment_state(value, field: str = "state") -> EquipmentState:
    return _parse_enum(EquipmentState, value, field)


def parse_capital_kind(value, field: str = "kind") -> CapitalKind:
    return _parse_enum(CapitalKind, value, field)
