"""Cash session lifecycle.

States::

    open -> pending_review -> closed     (operator closes, elevated validates)
    open -> closed                       (elevated closes)

``closed`` is terminal. At most one session per establishment is ``open``;
the partial unique index ``uq_cash_sessions_one_open`` enforces it, so two
racing opens end in one success and one ``ConflictError``. Close and validate
move the row with a compare-and-set on its current status, so a second
concurrent transition sees ``StateError`` instead of overwriting the first.
Each transition commits the session row and its audit event together.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app.cashdesk.core.clock import utcnow
from app.cashdesk.core.error_catalog import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.cashdesk.core.logging import log_json
from app.cashdesk.core.metrics import metrics
from app.cashdesk.core.money import money_str, to_money
from app.cashdesk.db.models import SESSION_CLOSED, SESSION_OPEN, SESSION_PENDING_REVIEW, CashSession
from app.cashdesk.repos.cash_movements import CashMovementRepository
from app.cashdesk.repos.cash_sessions import CashSessionQueryFilters, CashSessionRepository
from app.cashdesk.repos.establishments import EstablishmentRepository
from app.cashdesk.repos.ledger import TENDERS, LedgerReader, TenderTotals
from app.cashdesk.services.actors import Actor
from app.cashdesk.services.audit import CASH_CLOSE, CASH_OPEN, CASH_VALIDATE, AuditEventPayload, AuditService
from app.cashdesk.services.reconciliation import ExpectedTotals, ReconciliationEngine, frozen_totals

logger = logging.getLogger("cashdesk.cash_sessions")

ENTITY_TYPE = "cash_session"


@dataclass(frozen=True)
class CountedTotals:
    cash: Decimal | None = None
    pix: Decimal | None = None
    debit: Decimal | None = None
    credit: Decimal | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, tender) is None for tender in TENDERS)


def _require_counted(counted: CountedTotals | None, *, field_prefix: str) -> TenderTotals:
    if counted is None:
        raise ValidationError("counted totals are required", fields=[f"{field_prefix}{t}" for t in TENDERS])
    missing = [f"{field_prefix}{tender}" for tender in TENDERS if getattr(counted, tender) is None]
    if missing:
        raise ValidationError("counted totals are required", fields=missing)
    negative = [f"{field_prefix}{tender}" for tender in TENDERS if Decimal(str(getattr(counted, tender))) < 0]
    if negative:
        raise ValidationError("counted totals must be greater than or equal to 0", fields=negative)
    return TenderTotals.from_mapping({tender: getattr(counted, tender) for tender in TENDERS})


def _clean_note(note: str | None) -> str | None:
    if note is None:
        return None
    note = note.strip()
    return note or None


def counted_snapshot(session: CashSession) -> dict:
    return {
        "counted_cash": money_str(session.counted_cash),
        "counted_pix": money_str(session.counted_pix),
        "counted_debit": money_str(session.counted_debit),
        "counted_credit": money_str(session.counted_credit),
    }


def session_snapshot(session: CashSession) -> dict:
    return {
        "session_id": str(session.id),
        "status": session.status,
        "opening_amount": money_str(session.opening_amount),
        "opening_note": session.opening_note,
        "expected_cash": money_str(session.expected_cash),
        "expected_pix": money_str(session.expected_pix),
        "expected_debit": money_str(session.expected_debit),
        "expected_credit": money_str(session.expected_credit),
        "expected_total": money_str(session.expected_total),
        **counted_snapshot(session),
        "difference_amount": money_str(session.difference_amount),
        "closing_note": session.closing_note,
        "requires_review": session.requires_review,
    }


class CashSessionService:
    def __init__(self, db, *, ledger: LedgerReader | None = None, trace_id: str | None = None):
        self.db = db
        self.trace_id = trace_id
        self.sessions = CashSessionRepository(db)
        self.movements = CashMovementRepository(db)
        self.establishments = EstablishmentRepository(db)
        self.engine = ReconciliationEngine(db, ledger=ledger)
        self.audit = AuditService(db)

    # lookups

    def get_session(self, establishment_id, session_id, *, for_update: bool = False) -> CashSession:
        session = self.sessions.get_by_id(session_id, establishment_id=establishment_id, for_update=for_update)
        if session is None:
            if for_update:
                self.db.rollback()
            raise NotFoundError("cash session not found", session_id=str(session_id))
        return session

    def open_session_id(self, establishment_id):
        return self.sessions.get_open_session_id(establishment_id)

    def has_open_session(self, establishment_id) -> bool:
        return self.open_session_id(establishment_id) is not None

    def current_session(self, establishment_id) -> tuple[CashSession | None, ExpectedTotals | None]:
        session = self.sessions.get_open(establishment_id)
        if session is None:
            return None, None
        return session, self.engine.expected_for_session(session)

    def session_totals(self, establishment_id, session_id) -> ExpectedTotals:
        session = self.get_session(establishment_id, session_id)
        if session.status == SESSION_OPEN:
            return self.engine.expected_for_session(session)
        withdrawals, deposits = self.movements.sum_by_kind(session.id)
        return frozen_totals(session, withdrawals=withdrawals, deposits=deposits)

    def list_sessions(self, filters: CashSessionQueryFilters) -> tuple[list[CashSession], int]:
        return self.sessions.list_sessions(filters)

    def list_pending_review(self, establishment_id) -> list[CashSession]:
        return self.sessions.list_pending_review(establishment_id)

    # transitions

    def open_session(
        self,
        *,
        establishment_id,
        actor: Actor,
        opening_amount,
        note: str | None = None,
    ) -> CashSession:
        if opening_amount is None:
            raise ValidationError("opening_amount is required", fields=["opening_amount"])
        opening_amount = to_money(opening_amount)
        if opening_amount < 0:
            raise ValidationError("opening_amount must be greater than or equal to 0", fields=["opening_amount"])
        if self.establishments.get_by_id(establishment_id) is None:
            raise NotFoundError("establishment not found", establishment_id=str(establishment_id))

        now = utcnow()
        session = CashSession(
            establishment_id=establishment_id,
            status=SESSION_OPEN,
            opened_at=now,
            opened_by=actor.actor_id,
            opening_amount=opening_amount,
            opening_note=_clean_note(note),
            requires_review=False,
            created_at=now,
            updated_at=now,
        )
        try:
            self.sessions.add(session)
            self._audit(
                establishment_id,
                actor,
                CASH_OPEN,
                session,
                before=None,
                after={
                    "session_id": str(session.id),
                    "status": SESSION_OPEN,
                    "opening_amount": money_str(opening_amount),
                    "opening_note": session.opening_note,
                    "opened_at": now.isoformat(),
                },
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            existing_id = self.sessions.get_open_session_id(establishment_id)
            if existing_id is None:
                raise
            metrics.increment_open_conflict()
            log_json(
                logger,
                {
                    "event": "cash_session.open_conflict",
                    "establishment_id": str(establishment_id),
                    "open_session_id": str(existing_id),
                    "actor_id": actor.actor_id,
                    "trace_id": self.trace_id,
                },
            )
            raise ConflictError("session already open", open_session_id=str(existing_id)) from exc
        except Exception:
            self.db.rollback()
            raise

        metrics.record_cash_transition(action="open", status=SESSION_OPEN)
        log_json(
            logger,
            {
                "event": "cash_session.opened",
                "session_id": str(session.id),
                "establishment_id": str(establishment_id),
                "actor_id": actor.actor_id,
                "opening_amount": money_str(opening_amount),
                "trace_id": self.trace_id,
            },
        )
        return session

    def close_session(
        self,
        *,
        establishment_id,
        session_id,
        actor: Actor,
        counted: CountedTotals | None = None,
        note: str | None = None,
    ) -> CashSession:
        session = self.get_session(establishment_id, session_id, for_update=True)
        if session.status != SESSION_OPEN:
            self.db.rollback()
            raise StateError("session not open", session_id=str(session.id), status=session.status)

        note = _clean_note(note)
        try:
            if actor.can_certify_drawer:
                counted_totals = None
                if counted is not None and not counted.is_empty():
                    counted_totals = _require_counted(counted, field_prefix="counted_")
                next_status = SESSION_CLOSED
            else:
                counted_totals = _require_counted(counted, field_prefix="counted_")
                if note is None:
                    raise ValidationError("closing note is required for attendant closures", fields=["note"])
                next_status = SESSION_PENDING_REVIEW
        except ValidationError:
            self.db.rollback()
            raise

        now = utcnow()
        expected = self.engine.expected_for_session(session, until=now)
        if counted_totals is None:
            # elevated actor certifies the drawer as computed
            counted_totals = expected.as_tenders()
        difference = to_money(counted_totals.total - expected.total)

        values = {
            "status": next_status,
            "closed_at": now,
            "closed_by": actor.actor_id,
            "expected_cash": expected.cash,
            "expected_pix": expected.pix,
            "expected_debit": expected.debit,
            "expected_credit": expected.credit,
            "expected_total": expected.total,
            "counted_cash": counted_totals.cash,
            "counted_pix": counted_totals.pix,
            "counted_debit": counted_totals.debit,
            "counted_credit": counted_totals.credit,
            "difference_amount": difference,
            "closing_note": note,
            "requires_review": next_status == SESSION_PENDING_REVIEW,
            "updated_at": now,
        }
        if next_status == SESSION_CLOSED:
            values.update({"validated_at": now, "validated_by": actor.actor_id})

        try:
            if not self.sessions.compare_and_set(session.id, expected_status=SESSION_OPEN, values=values):
                self.db.rollback()
                raise StateError("session not open", session_id=str(session.id))
            self.sessions.refresh(session)
            self._audit(
                establishment_id,
                actor,
                CASH_CLOSE,
                session,
                before={"status": SESSION_OPEN},
                after=session_snapshot(session),
                metadata={
                    "flow": "elevated" if actor.can_certify_drawer else "operator",
                    "rejected_total": money_str(expected.rejected_total),
                    "warnings": list(expected.warnings),
                },
            )
            self.db.commit()
        except StateError:
            raise
        except Exception:
            self.db.rollback()
            raise

        metrics.record_cash_transition(action="close", status=next_status)
        log_json(
            logger,
            {
                "event": "cash_session.closed",
                "session_id": str(session.id),
                "establishment_id": str(establishment_id),
                "actor_id": actor.actor_id,
                "status": next_status,
                "expected_total": money_str(expected.total),
                "difference_amount": money_str(difference),
                "trace_id": self.trace_id,
            },
        )
        return session

    def validate_session(
        self,
        *,
        establishment_id,
        session_id,
        actor: Actor,
        final_counted: CountedTotals | None,
        adjustment_note: str | None = None,
    ) -> CashSession:
        session = self.get_session(establishment_id, session_id, for_update=True)
        if session.status != SESSION_PENDING_REVIEW:
            self.db.rollback()
            raise StateError("session is not pending review", session_id=str(session.id), status=session.status)
        if not actor.can_certify_drawer:
            self.db.rollback()
            raise AuthorizationError("only managers can validate a cash session", role=actor.role)
        try:
            final_totals = _require_counted(final_counted, field_prefix="final_counted_")
        except ValidationError:
            self.db.rollback()
            raise
        # expected_* stay as frozen at close
        difference = to_money(final_totals.total - to_money(session.expected_total))
        before = {**counted_snapshot(session), "difference_amount": money_str(session.difference_amount)}

        now = utcnow()
        values = {
            "status": SESSION_CLOSED,
            "counted_cash": final_totals.cash,
            "counted_pix": final_totals.pix,
            "counted_debit": final_totals.debit,
            "counted_credit": final_totals.credit,
            "difference_amount": difference,
            "adjustment_note": _clean_note(adjustment_note),
            "validated_at": now,
            "validated_by": actor.actor_id,
            "updated_at": now,
        }
        try:
            if not self.sessions.compare_and_set(session.id, expected_status=SESSION_PENDING_REVIEW, values=values):
                self.db.rollback()
                raise StateError("session is not pending review", session_id=str(session.id))
            self.sessions.refresh(session)
            self._audit(
                establishment_id,
                actor,
                CASH_VALIDATE,
                session,
                before=before,
                after={
                    **counted_snapshot(session),
                    "difference_amount": money_str(session.difference_amount),
                    "expected_total": money_str(session.expected_total),
                    "status": session.status,
                    "adjustment_note": session.adjustment_note,
                },
                metadata={"closed_by": session.closed_by},
            )
            self.db.commit()
        except StateError:
            raise
        except Exception:
            self.db.rollback()
            raise

        metrics.record_cash_transition(action="validate", status=SESSION_CLOSED)
        log_json(
            logger,
            {
                "event": "cash_session.validated",
                "session_id": str(session.id),
                "establishment_id": str(establishment_id),
                "actor_id": actor.actor_id,
                "difference_amount": money_str(difference),
                "trace_id": self.trace_id,
            },
        )
        return session

    def _audit(
        self,
        establishment_id,
        actor: Actor,
        action: str,
        session: CashSession,
        *,
        before: dict | None,
        after: dict | None,
        metadata: dict | None = None,
    ) -> None:
        self.audit.record_event(
            AuditEventPayload(
                tenant_id=str(establishment_id),
                actor=actor.actor_id,
                actor_role=actor.role,
                action=action,
                entity_type=ENTITY_TYPE,
                entity_id=str(session.id),
                before=before,
                after=after,
                metadata={"actor_label": actor.label, **(metadata or {})},
                trace_id=self.trace_id,
            )
        )
