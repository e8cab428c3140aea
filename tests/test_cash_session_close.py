import threading
import uuid
from decimal import Decimal

import pytest

from app.cashdesk.core.error_catalog import NotFoundError, StateError, ValidationError
from app.cashdesk.db.models import MOVEMENT_DEPOSIT, MOVEMENT_WITHDRAWAL, SESSION_CLOSED, SESSION_PENDING_REVIEW
from app.cashdesk.services.cash_movements import CashMovementService
from app.cashdesk.services.cash_sessions import CashSessionService, CountedTotals
from tests.cash_helpers import add_order, create_establishment, manager, operator


def _open_with_sales(db_session):
    establishment = create_establishment(db_session)
    service = CashSessionService(db_session)
    session = service.open_session(establishment_id=establishment.id, actor=operator(), opening_amount="100.00")
    add_order(db_session, establishment.id, amount="50.00", method="cash")
    add_order(db_session, establishment.id, amount="30.00", method="pix")
    add_order(db_session, establishment.id, amount="20.00", method="debit")
    return establishment, service, session


def _counted(cash="150.00", pix="30.00", debit="20.00", credit="0.00"):
    return CountedTotals(cash=Decimal(cash), pix=Decimal(pix), debit=Decimal(debit), credit=Decimal(credit))


def test_operator_close_goes_to_pending_review(db_session):
    establishment, service, session = _open_with_sales(db_session)

    closed = service.close_session(
        establishment_id=establishment.id,
        session_id=session.id,
        actor=operator(),
        counted=_counted(cash="145.00"),
        note="faltou troco",
    )

    assert closed.status == SESSION_PENDING_REVIEW
    assert closed.requires_review is True
    assert closed.expected_cash == Decimal("150.00")
    assert closed.expected_total == Decimal("200.00")
    assert closed.counted_cash == Decimal("145.00")
    assert closed.difference_amount == Decimal("-5.00")
    assert closed.closing_note == "faltou troco"
    assert closed.closed_by == "attendant-1"
    assert closed.closed_at is not None
    assert closed.validated_at is None
    assert service.has_open_session(establishment.id) is False


def test_operator_close_requires_note(db_session):
    establishment, service, session = _open_with_sales(db_session)

    with pytest.raises(ValidationError) as exc_info:
        service.close_session(
            establishment_id=establishment.id,
            session_id=session.id,
            actor=operator(),
            counted=_counted(),
            note="   ",
        )

    assert exc_info.value.details["fields"] == ["note"]
    assert service.get_session(establishment.id, session.id).status == "open"


def test_operator_close_requires_every_counted_tender(db_session):
    establishment, service, session = _open_with_sales(db_session)

    with pytest.raises(ValidationError) as exc_info:
        service.close_session(
            establishment_id=establishment.id,
            session_id=session.id,
            actor=operator(),
            counted=CountedTotals(cash=Decimal("150.00"), pix=Decimal("30.00")),
            note="contagem",
        )

    assert exc_info.value.details["fields"] == ["counted_debit", "counted_credit"]


def test_operator_close_rejects_negative_counts(db_session):
    establishment, service, session = _open_with_sales(db_session)

    with pytest.raises(ValidationError) as exc_info:
        service.close_session(
            establishment_id=establishment.id,
            session_id=session.id,
            actor=operator(),
            counted=_counted(pix="-1.00"),
            note="contagem",
        )

    assert exc_info.value.details["fields"] == ["counted_pix"]


def test_manager_close_certifies_expected_totals(db_session):
    establishment, service, session = _open_with_sales(db_session)

    closed = service.close_session(establishment_id=establishment.id, session_id=session.id, actor=manager())

    assert closed.status == SESSION_CLOSED
    assert closed.requires_review is False
    assert closed.expected_total == Decimal("200.00")
    assert closed.counted_cash == closed.expected_cash
    assert closed.counted_pix == closed.expected_pix
    assert closed.difference_amount == Decimal("0.00")
    assert closed.validated_by == "manager-1"
    assert closed.closing_note is None


def test_manager_close_with_counts_records_difference(db_session):
    establishment, service, session = _open_with_sales(db_session)

    closed = service.close_session(
        establishment_id=establishment.id,
        session_id=session.id,
        actor=manager(),
        counted=_counted(cash="152.00"),
        note="sobra de troco",
    )

    assert closed.status == SESSION_CLOSED
    assert closed.difference_amount == Decimal("2.00")
    assert closed.closing_note == "sobra de troco"


def test_close_snapshots_movements(db_session):
    establishment, service, session = _open_with_sales(db_session)
    movements = CashMovementService(db_session)
    movements.record(
        establishment_id=establishment.id, session_id=session.id, actor=operator(), kind=MOVEMENT_WITHDRAWAL, amount="40.00"
    )
    movements.record(
        establishment_id=establishment.id, session_id=session.id, actor=operator(), kind=MOVEMENT_DEPOSIT, amount="15.00"
    )

    closed = service.close_session(establishment_id=establishment.id, session_id=session.id, actor=manager())

    assert closed.expected_cash == Decimal("125.00")
    totals = service.session_totals(establishment.id, session.id)
    assert totals.withdrawals == Decimal("40.00")
    assert totals.deposits == Decimal("15.00")
    assert totals.sales.cash == Decimal("50.00")
    assert totals.total == Decimal("175.00")


def test_sales_after_close_do_not_change_snapshot(db_session):
    establishment, service, session = _open_with_sales(db_session)
    closed = service.close_session(establishment_id=establishment.id, session_id=session.id, actor=manager())

    add_order(db_session, establishment.id, amount="99.00", method="cash")

    totals = service.session_totals(establishment.id, session.id)
    assert totals.total == closed.expected_total == Decimal("200.00")


def test_second_close_is_a_state_error(db_session):
    establishment, service, session = _open_with_sales(db_session)
    service.close_session(
        establishment_id=establishment.id, session_id=session.id, actor=operator(), counted=_counted(), note="ok"
    )

    with pytest.raises(StateError):
        service.close_session(
            establishment_id=establishment.id, session_id=session.id, actor=operator(), counted=_counted(), note="ok"
        )
    with pytest.raises(StateError):
        service.close_session(establishment_id=establishment.id, session_id=session.id, actor=manager())


def test_close_unknown_or_foreign_session_is_not_found(db_session):
    establishment, service, session = _open_with_sales(db_session)
    other = create_establishment(db_session, name="Outra loja")

    with pytest.raises(NotFoundError):
        service.close_session(establishment_id=establishment.id, session_id=uuid.uuid4(), actor=manager())
    with pytest.raises(NotFoundError):
        service.close_session(establishment_id=other.id, session_id=session.id, actor=manager())


def test_concurrent_closes_apply_once(session_factory, db_session):
    establishment, service, session = _open_with_sales(db_session)
    barrier = threading.Barrier(2)
    results: list[str] = []
    lock = threading.Lock()

    def worker():
        db = session_factory()
        try:
            barrier.wait()
            try:
                CashSessionService(db).close_session(
                    establishment_id=establishment.id, session_id=session.id, actor=manager()
                )
                outcome = "closed"
            except StateError:
                outcome = "state_error"
        finally:
            db.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == ["closed", "state_error"]


def test_second_close_with_blank_input_is_a_state_error(db_session):
    establishment, service, session = _open_with_sales(db_session)
    service.close_session(
        establishment_id=establishment.id, session_id=session.id, actor=operator(), counted=_counted(), note="ok"
    )

    with pytest.raises(StateError):
        service.close_session(
            establishment_id=establishment.id, session_id=session.id, actor=operator(), counted=None, note=""
        )
    with pytest.raises(StateError):
        service.close_session(
            establishment_id=establishment.id,
            session_id=session.id,
            actor=manager(),
            counted=CountedTotals(cash=Decimal("1.00")),
        )
    assert service.get_session(establishment.id, session.id).status == SESSION_PENDING_REVIEW
