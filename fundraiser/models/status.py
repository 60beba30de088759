"""Record statuses shared by orders and donations."""

from __future__ import annotations

from enum import Enum


class RecordStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FULFILLED = "FULFILLED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# Statuses a paid confirmation must never move a record out of.
PAID_OR_LATER = frozenset({RecordStatus.PAID, RecordStatus.FULFILLED, RecordStatus.REFUNDED})
# Statuses counted as revenue by reporting.
REVENUE_STATUSES = frozenset({RecordStatus.PAID, RecordStatus.FULFILLED})

STATUS_VALUES = tuple(s.value for s in RecordStatus)

# Edges reachable through explicit (admin) transitions. PENDING -> PAID here is
# an offline cash/check payment with no provider reference.
ADMIN_EDGES = {
    RecordStatus.PENDING: frozenset({RecordStatus.CANCELLED, RecordStatus.PAID}),
    RecordStatus.PAID: frozenset({RecordStatus.FULFILLED, RecordStatus.REFUNDED}),
    RecordStatus.FULFILLED: frozenset({RecordStatus.REFUNDED}),
    RecordStatus.CANCELLED: frozenset(),
    RecordStatus.REFUNDED: frozenset(),
}


def allowed_predecessors(target: RecordStatus) -> frozenset:
    """Statuses a record may hold when ``target`` is written over it (itself included)."""
    return frozenset({target} | {src for src, dests in ADMIN_EDGES.items() if target in dests})
