from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select

from app.cashdesk.core.money import to_money
from app.cashdesk.db.models import MOVEMENT_DEPOSIT, MOVEMENT_WITHDRAWAL, CashMovement


class CashMovementRepository:
    def __init__(self, db):
        self.db = db

    def add(self, movement: CashMovement) -> CashMovement:
        self.db.add(movement)
        self.db.flush()
        return movement

    def list_for_session(self, session_id) -> list[CashMovement]:
        query = (
            select(CashMovement)
            .where(CashMovement.session_id == session_id)
            .order_by(CashMovement.created_at, CashMovement.id)
        )
        return self.db.execute(query).scalars().all()

    def sum_by_kind(self, session_id) -> tuple[Decimal, Decimal]:
        """Return ``(withdrawals, deposits)`` for the session."""
        rows = self.db.execute(
            select(CashMovement.kind, func.sum(CashMovement.amount))
            .where(CashMovement.session_id == session_id)
            .group_by(CashMovement.kind)
        ).all()
        totals = {kind: amount for kind, amount in rows}
        return to_money(totals.get(MOVEMENT_WITHDRAWAL)), to_money(totals.get(MOVEMENT_DEPOSIT))
