"""Read-only rollups for the admin dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fundraiser.models import Donation, MulchOrder, RecordStatus, REVENUE_STATUSES
from fundraiser.services.order_store import OrderStore

REFERRAL_SOURCE_LABELS: Dict[str, str] = {
    "FRIEND": "Friend",
    "FLYER": "Flyer",
    "RETURNING_CUSTOMER": "Returning Customer",
    "ONLINE": "Online/Social Media",
    "OTHER": "Other",
}


def year_bounds(year: int) -> Tuple[datetime, datetime]:
    return datetime(int(year), 1, 1), datetime(int(year) + 1, 1, 1)


def list_orders_for_year(store: OrderStore, year: int) -> List[MulchOrder]:
    start, end = year_bounds(year)
    return store.list_orders_for_period(start, end)


def list_donations_for_year(store: OrderStore, year: int) -> List[Donation]:
    start, end = year_bounds(year)
    return store.list_donations_for_period(start, end)


def referral_label(source: Optional[str], details: Optional[str]) -> str:
    if source == "OTHER":
        return details or REFERRAL_SOURCE_LABELS["OTHER"]
    return REFERRAL_SOURCE_LABELS.get(source or "", "")


def _counts_as_revenue(order: MulchOrder) -> bool:
    return order.state in REVENUE_STATUSES


@dataclass(frozen=True)
class RevenueSummary:
    paid_orders: int
    total_bags: int
    spread_bags: int
    gross_revenue_cents: int
    unfiltered_gross_cents: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "paidOrders": self.paid_orders,
            "totalBags": self.total_bags,
            "spreadBags": self.spread_bags,
            "grossRevenueCents": self.gross_revenue_cents,
            "unfilteredGrossCents": self.unfiltered_gross_cents,
        }


@dataclass(frozen=True)
class NeighborhoodStats:
    neighborhood: str
    total_orders: int = 0
    total_bags: int = 0
    total_revenue_cents: int = 0
    spread_bags: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "neighborhood": self.neighborhood,
            "totalOrders": self.total_orders,
            "totalBags": self.total_bags,
            "totalRevenueCents": self.total_revenue_cents,
            "spreadBags": self.spread_bags,
        }


def revenue_summary(orders: Iterable[MulchOrder]) -> RevenueSummary:
    """Bags and revenue over PAID + FULFILLED orders, plus the gross over every order."""
    orders = list(orders)
    paid = [o for o in orders if _counts_as_revenue(o)]
    return RevenueSummary(
        paid_orders=len(paid),
        total_bags=sum(o.quantity for o in paid),
        spread_bags=sum(o.quantity for o in paid if o.is_spread),
        gross_revenue_cents=sum(o.total_cents for o in paid),
        unfiltered_gross_cents=sum(o.total_cents for o in orders),
    )


def neighborhood_stats(orders: Iterable[MulchOrder], neighborhoods: Sequence[str]) -> List[NeighborhoodStats]:
    """
    One row per configured neighborhood, in configured order, zeros where nothing
    was sold. Orders in neighborhoods no longer configured are left out.
    """
    acc: Dict[str, Dict[str, int]] = {}
    for order in orders:
        if not _counts_as_revenue(order):
            continue
        row = acc.setdefault(order.neighborhood, {"orders": 0, "bags": 0, "revenue": 0, "spread": 0})
        row["orders"] += 1
        row["bags"] += order.quantity
        row["revenue"] += order.total_cents
        if order.is_spread:
            row["spread"] += order.quantity

    out: List[NeighborhoodStats] = []
    for name in neighborhoods:
        row = acc.get(name)
        if row is None:
            out.append(NeighborhoodStats(neighborhood=name))
            continue
        out.append(
            NeighborhoodStats(
                neighborhood=name,
                total_orders=row["orders"],
                total_bags=row["bags"],
                total_revenue_cents=row["revenue"],
                spread_bags=row["spread"],
            )
        )
    return out


def donation_summary(donations: Iterable[Donation]) -> Dict[str, Any]:
    donations = list(donations)
    kept = [d for d in donations if d.state == RecordStatus.PAID]
    by_provider: Dict[str, int] = {}
    for d in kept:
        provider = d.payment_provider or "offline"
        by_provider[provider] = by_provider.get(provider, 0) + int(d.amount_cents)
    return {
        "count": len(kept),
        "totalCents": sum(int(d.amount_cents) for d in kept),
        "refundedCount": len(donations) - len(kept),
        "byProviderCents": by_provider,
    }


def order_row(order: MulchOrder) -> Dict[str, Any]:
    """Flattened order for the admin table."""
    data = order.as_dict()
    data["referral"] = referral_label(order.referral_source, order.referral_source_details)
    data["spread"] = order.is_spread
    return data


__all__ = [
    "NeighborhoodStats",
    "REFERRAL_SOURCE_LABELS",
    "RevenueSummary",
    "donation_summary",
    "list_donations_for_year",
    "list_orders_for_year",
    "neighborhood_stats",
    "order_row",
    "referral_label",
    "revenue_summary",
    "year_bounds",
]
