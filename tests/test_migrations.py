import os
import uuid
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config("alembic.ini")
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


def test_migrations_apply(tmp_path: Path):
    db_path = tmp_path / "migrations.db"
    database_url = f"sqlite+pysqlite:///{db_path}"
    _run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())

    assert {
        "establishments",
        "orders",
        "cash_sessions",
        "cash_movements",
        "audit_events",
        "idempotency_records",
    } <= tables

    indexes = {index["name"]: index for index in inspector.get_indexes("cash_sessions")}
    assert indexes["uq_cash_sessions_one_open"]["unique"]
    assert "ix_cash_sessions_establishment_status" in indexes
    audit_indexes = [index["name"] for index in inspector.get_indexes("audit_events")]
    assert audit_indexes.count("ix_audit_events_trace_id") == 1
    engine.dispose()


def test_one_open_index_allows_closed_history(tmp_path: Path):
    db_path = tmp_path / "partial.db"
    database_url = f"sqlite+pysqlite:///{db_path}"
    _run_migrations(database_url)

    engine = create_engine(database_url, future=True)
    establishment_id = str(uuid.uuid4())
    insert_session = text(
        """
        INSERT INTO cash_sessions
            (id, establishment_id, status, opened_at, opened_by, opening_amount,
             requires_review, created_at, updated_at)
        VALUES
            (:id, :establishment_id, :status, CURRENT_TIMESTAMP, 'tester', 0,
             0, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
        """
    )
    with engine.begin() as conn:
        conn.execute(
            text("INSERT INTO establishments (id, name, require_online_acceptance, created_at) VALUES (:id, 'E', 0, CURRENT_TIMESTAMP)"),
            {"id": establishment_id},
        )
        for status in ("closed", "closed", "pending_review", "open"):
            conn.execute(
                insert_session,
                {"id": str(uuid.uuid4()), "establishment_id": establishment_id, "status": status},
            )

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(
                insert_session,
                {"id": str(uuid.uuid4()), "establishment_id": establishment_id, "status": "open"},
            )
    engine.dispose()
