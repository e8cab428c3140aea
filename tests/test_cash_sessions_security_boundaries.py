from app.cashdesk.core.error_catalog import ErrorCatalog
from tests.cash_helpers import auth_headers, create_establishment, open_via_api


def test_requests_without_token_are_rejected(client, db_session):
    response = client.get("/cash/sessions/current")

    assert response.status_code == 401
    assert response.json()["code"] == ErrorCatalog.INVALID_TOKEN.code


def test_invalid_token_is_rejected(client, db_session):
    response = client.get("/cash/sessions/current", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["code"] == ErrorCatalog.INVALID_TOKEN.code


def test_foreign_session_is_hidden(client, db_session):
    owner = create_establishment(db_session, name="Loja A")
    intruder = create_establishment(db_session, name="Loja B")
    session = open_via_api(client, owner.id)

    detail = client.get(f"/cash/sessions/{session['id']}", headers=auth_headers(intruder.id))
    close = client.post(f"/cash/sessions/{session['id']}/close", headers=auth_headers(intruder.id), json={})
    movement = client.post(
        f"/cash/sessions/{session['id']}/movements",
        headers=auth_headers(intruder.id),
        json={"kind": "withdrawal", "amount": "10.00"},
    )

    assert detail.status_code == 404
    assert close.status_code == 404
    assert movement.status_code == 404
    still_open = client.get("/cash/sessions/current", headers=auth_headers(owner.id))
    assert still_open.json()["session"]["id"] == session["id"]


def test_cross_establishment_query_is_denied(client, db_session):
    owner = create_establishment(db_session, name="Loja A")
    other = create_establishment(db_session, name="Loja B")

    response = client.get(
        "/cash/sessions/current",
        headers=auth_headers(owner.id),
        params={"establishment_id": str(other.id)},
    )

    assert response.status_code == 403
    assert response.json()["code"] == ErrorCatalog.CROSS_TENANT_ACCESS_DENIED.code
