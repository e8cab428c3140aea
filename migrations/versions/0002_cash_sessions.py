"""cash sessions, movements, audit and idempotency

Revision ID: 0002_cash_sessions
Revises: 0001_establishments_orders
Create Date: 2026-09-02 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_cash_sessions"
down_revision = "0001_establishments_orders"
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def _money(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "cash_sessions",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("establishment_id", GUID(), sa.ForeignKey("establishments.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("opened_by", sa.String(length=64), nullable=False),
        _money("opening_amount", nullable=False),
        sa.Column("opening_note", sa.Text(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("closed_by", sa.String(length=64), nullable=True),
        _money("expected_cash"),
        _money("expected_pix"),
        _money("expected_debit"),
        _money("expected_credit"),
        _money("expected_total"),
        _money("counted_cash"),
        _money("counted_pix"),
        _money("counted_debit"),
        _money("counted_credit"),
        _money("difference_amount"),
        sa.Column("closing_note", sa.Text(), nullable=True),
        sa.Column("requires_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("validated_at", sa.DateTime(), nullable=True),
        sa.Column("validated_by", sa.String(length=64), nullable=True),
        sa.Column("adjustment_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cash_sessions_establishment_id", "cash_sessions", ["establishment_id"])
    op.create_index("ix_cash_sessions_establishment_status", "cash_sessions", ["establishment_id", "status"])
    op.create_index(
        "uq_cash_sessions_one_open",
        "cash_sessions",
        ["establishment_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "cash_movements",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column(
            "session_id",
            GUID(),
            sa.ForeignKey("cash_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("establishment_id", GUID(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        _money("amount", nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
        sa.CheckConstraint("kind IN ('withdrawal', 'deposit')", name="ck_cash_movements_kind"),
    )
    op.create_index("ix_cash_movements_session_id", "cash_movements", ["session_id"])
    op.create_index("ix_cash_movements_establishment_id", "cash_movements", ["establishment_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("tenant_id", GUID(), nullable=False),
        sa.Column("actor", sa.String(length=64), nullable=False),
        sa.Column("actor_role", sa.String(length=50), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("trace_id", sa.String(length=255), nullable=True),
        sa.Column("before_payload", sa.JSON(), nullable=True),
        sa.Column("after_payload", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("result", sa.String(length=20), nullable=False, server_default="success"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_tenant_id", "audit_events", ["tenant_id"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_trace_id", "audit_events", ["trace_id"])

    op.create_table(
        "idempotency_records",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("tenant_id", GUID(), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tenant_id", "endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )
    op.create_index("ix_idempotency_records_tenant_id", "idempotency_records", ["tenant_id"])


def downgrade() -> None:
    op.drop_index("ix_idempotency_records_tenant_id", table_name="idempotency_records")
    op.drop_table("idempotency_records")
    op.drop_index("ix_audit_events_trace_id", table_name="audit_events")
    op.drop_index("ix_audit_events_entity_id", table_name="audit_events")
    op.drop_index("ix_audit_events_tenant_id", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_cash_movements_establishment_id", table_name="cash_movements")
    op.drop_index("ix_cash_movements_session_id", table_name="cash_movements")
    op.drop_table("cash_movements")
    op.drop_index("uq_cash_sessions_one_open", table_name="cash_sessions")
    op.drop_index("ix_cash_sessions_establishment_status", table_name="cash_sessions")
    op.drop_index("ix_cash_sessions_establishment_id", table_name="cash_sessions")
    op.drop_table("cash_sessions")
