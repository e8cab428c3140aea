from __future__ import annotations

import logging

from app.cashdesk.core.clock import utcnow
from app.cashdesk.core.error_catalog import NotFoundError, StateError, ValidationError
from app.cashdesk.core.logging import log_json
from app.cashdesk.core.money import money_str, to_money
from app.cashdesk.db.models import MOVEMENT_DEPOSIT, MOVEMENT_WITHDRAWAL, SESSION_OPEN, CashMovement
from app.cashdesk.repos.cash_movements import CashMovementRepository
from app.cashdesk.repos.cash_sessions import CashSessionRepository
from app.cashdesk.services.actors import Actor

logger = logging.getLogger("cashdesk.cash_movements")

MOVEMENT_KINDS = (MOVEMENT_WITHDRAWAL, MOVEMENT_DEPOSIT)


class CashMovementService:
    """Withdrawals (sangria) and deposits (suprimento) on an open session.

    Movements are append-only. A wrong entry is fixed by recording the
    opposite kind for the same amount.
    """

    def __init__(self, db, *, trace_id: str | None = None):
        self.db = db
        self.trace_id = trace_id
        self.sessions = CashSessionRepository(db)
        self.movements = CashMovementRepository(db)

    def record(
        self,
        *,
        establishment_id,
        session_id,
        actor: Actor,
        kind: str,
        amount,
        description: str | None = None,
    ) -> CashMovement:
        if kind not in MOVEMENT_KINDS:
            raise ValidationError("kind must be withdrawal or deposit", fields=["kind"])
        if amount is None:
            raise ValidationError("amount is required", fields=["amount"])
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount must be greater than 0", fields=["amount"])

        session = self.sessions.get_by_id(session_id, establishment_id=establishment_id, for_update=True)
        if session is None:
            self.db.rollback()
            raise NotFoundError("cash session not found", session_id=str(session_id))
        if session.status != SESSION_OPEN:
            self.db.rollback()
            raise StateError("session not open", session_id=str(session.id), status=session.status)

        now = utcnow()
        movement = CashMovement(
            session_id=session.id,
            establishment_id=session.establishment_id,
            kind=kind,
            amount=amount,
            description=(description or "").strip() or None,
            actor_id=actor.actor_id,
            created_at=now,
        )
        try:
            # holds the row against a concurrent close until this insert commits
            if not self.sessions.compare_and_set(session.id, expected_status=SESSION_OPEN, values={"updated_at": now}):
                self.db.rollback()
                raise StateError("session not open", session_id=str(session.id))
            self.movements.add(movement)
            self.db.commit()
        except StateError:
            raise
        except Exception:
            self.db.rollback()
            raise

        log_json(
            logger,
            {
                "event": "cash_movement.recorded",
                "movement_id": str(movement.id),
                "session_id": str(session.id),
                "kind": kind,
                "amount": money_str(amount),
                "actor_id": actor.actor_id,
                "trace_id": self.trace_id,
            },
        )
        return movement

    def list_for_session(self, *, establishment_id, session_id) -> list[CashMovement]:
        session = self.sessions.get_by_id(session_id, establishment_id=establishment_id)
        if session is None:
            raise NotFoundError("cash session not found", session_id=str(session_id))
        return self.movements.list_for_session(session.id)
