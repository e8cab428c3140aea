from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import func, or_, select

from app.cashdesk.core.money import ZERO, to_money
from app.cashdesk.db.models import Order

TENDERS = ("cash", "pix", "debit", "credit")
REJECTED_ORDER_STATUSES = ("rejected", "cancelled")
ONLINE_CHANNEL = "online"


@dataclass(frozen=True)
class TenderTotals:
    cash: Decimal = ZERO
    pix: Decimal = ZERO
    debit: Decimal = ZERO
    credit: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return to_money(self.cash + self.pix + self.debit + self.credit)

    @classmethod
    def from_mapping(cls, values: dict) -> "TenderTotals":
        return cls(**{tender: to_money(values.get(tender)) for tender in TENDERS})


@dataclass(frozen=True)
class LedgerWindow:
    establishment_id: str
    start: datetime
    end: datetime
    require_online_acceptance: bool = False


class LedgerReader(Protocol):
    def sum_by_tender(self, window: LedgerWindow) -> TenderTotals: ...

    def rejected_total(self, window: LedgerWindow) -> Decimal: ...


class SqlLedgerReader:
    """Aggregates the orders table over a session window.

    Orders whose tender is outside ``TENDERS`` are left out of reconciliation.
    Rejected and cancelled orders never reach the drawer.
    """

    def __init__(self, db):
        self.db = db

    def _window_filters(self, window: LedgerWindow) -> list:
        return [
            Order.establishment_id == window.establishment_id,
            Order.created_at >= window.start,
            Order.created_at <= window.end,
        ]

    def sum_by_tender(self, window: LedgerWindow) -> TenderTotals:
        query = (
            select(Order.payment_method, func.sum(Order.total_amount))
            .where(
                *self._window_filters(window),
                Order.payment_method.in_(TENDERS),
                Order.status.not_in(REJECTED_ORDER_STATUSES),
            )
            .group_by(Order.payment_method)
        )
        if window.require_online_acceptance:
            query = query.where(or_(Order.channel != ONLINE_CHANNEL, Order.accepted_at.is_not(None)))
        rows = self.db.execute(query).all()
        return TenderTotals.from_mapping({method: amount for method, amount in rows})

    def rejected_total(self, window: LedgerWindow) -> Decimal:
        query = select(func.sum(Order.total_amount)).where(
            *self._window_filters(window),
            Order.status.in_(REJECTED_ORDER_STATUSES),
        )
        return to_money(self.db.execute(query).scalar())
