import uuid
from decimal import Decimal

from app.cashdesk.core.error_catalog import ErrorCatalog
from tests.cash_helpers import add_order, auth_headers, create_establishment, open_via_api


def test_open_and_current_session(client, db_session):
    establishment = create_establishment(db_session)

    empty = client.get("/cash/sessions/current", headers=auth_headers(establishment.id))
    assert empty.status_code == 200
    assert empty.json() == {"has_open_session": False, "session": None, "totals": None}

    opened = open_via_api(client, establishment.id, opening_amount="100.00")
    assert opened["status"] == "open"
    assert Decimal(opened["opening_amount"]) == Decimal("100.00")

    add_order(db_session, establishment.id, amount="12.00", method="credit")
    current = client.get("/cash/sessions/current", headers=auth_headers(establishment.id))
    body = current.json()
    assert body["has_open_session"] is True
    assert body["session"]["id"] == opened["id"]
    assert Decimal(body["totals"]["expected_cash"]) == Decimal("100.00")
    assert Decimal(body["totals"]["expected_credit"]) == Decimal("12.00")
    assert Decimal(body["totals"]["expected_total"]) == Decimal("112.00")
    assert body["totals"]["warnings"] == []


def test_second_open_returns_conflict(client, db_session):
    establishment = create_establishment(db_session)
    opened = open_via_api(client, establishment.id)

    response = client.post(
        "/cash/sessions/open",
        headers=auth_headers(establishment.id, role="ATTENDANT", actor_id="attendant-1"),
        json={"opening_amount": "10.00"},
    )

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == ErrorCatalog.CASH_SESSION_ALREADY_OPEN.code
    assert payload["details"]["open_session_id"] == opened["id"]
    assert payload["trace_id"]


def test_open_rejects_negative_float(client, db_session):
    establishment = create_establishment(db_session)

    response = client.post(
        "/cash/sessions/open",
        headers=auth_headers(establishment.id),
        json={"opening_amount": "-1.00"},
    )

    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.VALIDATION_ERROR.code
    assert response.json()["details"]["fields"] == ["opening_amount"]


def test_operator_close_and_manager_validate_flow(client, db_session):
    establishment = create_establishment(db_session)
    operator_headers = auth_headers(establishment.id, role="ATTENDANT", actor_id="attendant-1")
    manager_headers = auth_headers(establishment.id)
    session = open_via_api(client, establishment.id, role="ATTENDANT", actor_id="attendant-1")
    add_order(db_session, establishment.id, amount="50.00", method="cash")
    add_order(db_session, establishment.id, amount="30.00", method="pix")

    movement = client.post(
        f"/cash/sessions/{session['id']}/movements",
        headers=operator_headers,
        json={"kind": "withdrawal", "amount": "20.00", "description": "cofre"},
    )
    assert movement.status_code == 200
    assert movement.json()["kind"] == "withdrawal"

    missing_note = client.post(
        f"/cash/sessions/{session['id']}/close",
        headers=operator_headers,
        json={"counted_cash": "125.00", "counted_pix": "30.00", "counted_debit": "0", "counted_credit": "0"},
    )
    assert missing_note.status_code == 422

    closed = client.post(
        f"/cash/sessions/{session['id']}/close",
        headers=operator_headers,
        json={
            "counted_cash": "125.00",
            "counted_pix": "30.00",
            "counted_debit": "0",
            "counted_credit": "0",
            "note": "ok",
        },
    )
    assert closed.status_code == 200
    closed_body = closed.json()
    assert closed_body["status"] == "pending_review"
    assert Decimal(closed_body["expected_total"]) == Decimal("160.00")
    assert Decimal(closed_body["difference_amount"]) == Decimal("-5.00")

    pending = client.get("/cash/sessions/pending-review", headers=manager_headers)
    assert [row["id"] for row in pending.json()["rows"]] == [session["id"]]

    final_counts = {
        "final_counted_cash": "130.00",
        "final_counted_pix": "30.00",
        "final_counted_debit": "0",
        "final_counted_credit": "0",
        "adjustment_note": "recontagem",
    }
    denied = client.post(f"/cash/sessions/{session['id']}/validate", headers=operator_headers, json=final_counts)
    assert denied.status_code == 403
    assert denied.json()["code"] == ErrorCatalog.PERMISSION_DENIED.code

    validated = client.post(f"/cash/sessions/{session['id']}/validate", headers=manager_headers, json=final_counts)
    assert validated.status_code == 200
    assert validated.json()["status"] == "closed"
    assert Decimal(validated.json()["difference_amount"]) == Decimal("0.00")

    again = client.post(f"/cash/sessions/{session['id']}/validate", headers=manager_headers, json=final_counts)
    assert again.status_code == 409
    assert again.json()["code"] == ErrorCatalog.INVALID_SESSION_STATE.code

    blocked = client.post(
        f"/cash/sessions/{session['id']}/movements",
        headers=operator_headers,
        json={"kind": "deposit", "amount": "1.00"},
    )
    assert blocked.status_code == 409
    assert blocked.json()["code"] == ErrorCatalog.INVALID_SESSION_STATE.code


def test_manager_close_without_counts(client, db_session):
    establishment = create_establishment(db_session)
    session = open_via_api(client, establishment.id, opening_amount="40.00")

    response = client.post(f"/cash/sessions/{session['id']}/close", headers=auth_headers(establishment.id), json={})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "closed"
    assert body["requires_review"] is False
    assert Decimal(body["counted_cash"]) == Decimal("40.00")
    assert Decimal(body["difference_amount"]) == Decimal("0.00")

    totals = client.get(f"/cash/sessions/{session['id']}/totals", headers=auth_headers(establishment.id))
    assert totals.status_code == 200
    assert Decimal(totals.json()["expected_total"]) == Decimal("40.00")


def test_movement_payload_is_validated(client, db_session):
    establishment = create_establishment(db_session)
    session = open_via_api(client, establishment.id)

    bad_kind = client.post(
        f"/cash/sessions/{session['id']}/movements",
        headers=auth_headers(establishment.id),
        json={"kind": "refund", "amount": "1.00"},
    )
    zero_amount = client.post(
        f"/cash/sessions/{session['id']}/movements",
        headers=auth_headers(establishment.id),
        json={"kind": "deposit", "amount": "0"},
    )

    assert bad_kind.status_code == 422
    assert zero_amount.status_code == 422
    assert zero_amount.json()["details"]["fields"] == ["amount"]


def test_session_detail_and_history(client, db_session):
    establishment = create_establishment(db_session)
    first = open_via_api(client, establishment.id, opening_amount="10.00")
    client.post(f"/cash/sessions/{first['id']}/close", headers=auth_headers(establishment.id), json={})
    second = open_via_api(client, establishment.id, opening_amount="20.00")
    client.post(
        f"/cash/sessions/{second['id']}/movements",
        headers=auth_headers(establishment.id),
        json={"kind": "deposit", "amount": "5.00"},
    )

    history = client.get("/cash/sessions", headers=auth_headers(establishment.id))
    assert history.status_code == 200
    assert history.json()["total"] == 2

    closed_only = client.get("/cash/sessions", headers=auth_headers(establishment.id), params={"status": "closed"})
    assert [row["id"] for row in closed_only.json()["rows"]] == [first["id"]]

    detail = client.get(f"/cash/sessions/{second['id']}", headers=auth_headers(establishment.id))
    assert detail.status_code == 200
    assert detail.json()["session"]["id"] == second["id"]
    assert [row["kind"] for row in detail.json()["movements"]] == ["deposit"]

    movements = client.get(f"/cash/sessions/{second['id']}/movements", headers=auth_headers(establishment.id))
    assert movements.json()["total"] == 1

    audit = client.get("/cash/audit", headers=auth_headers(establishment.id), params={"session_id": first["id"]})
    assert sorted(row["action"] for row in audit.json()["rows"]) == ["cash.close", "cash.open"]


def test_unknown_session_is_not_found(client, db_session):
    establishment = create_establishment(db_session)

    response = client.get(f"/cash/sessions/{uuid.uuid4()}", headers=auth_headers(establishment.id))

    assert response.status_code == 404
    assert response.json()["code"] == ErrorCatalog.CASH_SESSION_NOT_FOUND.code


def test_elevated_role_token_validates_pending_session(client, db_session):
    establishment = create_establishment(db_session)
    operator_headers = auth_headers(establishment.id, role="operator", actor_id="attendant-1")
    elevated_headers = auth_headers(establishment.id, role="elevated", actor_id="supervisor-1")
    session = open_via_api(client, establishment.id, role="operator", actor_id="attendant-1")

    closed = client.post(
        f"/cash/sessions/{session['id']}/close",
        headers=operator_headers,
        json={"counted_cash": "100.00", "counted_pix": "0", "counted_debit": "0", "counted_credit": "0", "note": "ok"},
    )
    assert closed.json()["status"] == "pending_review"

    validated = client.post(
        f"/cash/sessions/{session['id']}/validate",
        headers=elevated_headers,
        json={
            "final_counted_cash": "100.00",
            "final_counted_pix": "0",
            "final_counted_debit": "0",
            "final_counted_credit": "0",
        },
    )

    assert validated.status_code == 200
    assert validated.json()["status"] == "closed"
    assert validated.json()["validated_by"] == "supervisor-1"


def test_second_close_over_http_reports_state_before_input(client, db_session):
    establishment = create_establishment(db_session)
    operator_headers = auth_headers(establishment.id, role="operator", actor_id="attendant-1")
    session = open_via_api(client, establishment.id, role="operator", actor_id="attendant-1")
    client.post(
        f"/cash/sessions/{session['id']}/close",
        headers=operator_headers,
        json={"counted_cash": "100.00", "counted_pix": "0", "counted_debit": "0", "counted_credit": "0", "note": "ok"},
    )

    again = client.post(f"/cash/sessions/{session['id']}/close", headers=operator_headers, json={"note": ""})

    assert again.status_code == 409
    assert again.json()["code"] == ErrorCatalog.INVALID_SESSION_STATE.code
