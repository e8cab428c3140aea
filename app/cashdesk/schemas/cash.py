from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class CashSessionOpenRequest(BaseModel):
    opening_amount: Decimal
    note: str | None = Field(default=None, max_length=1000)


class CashSessionCloseRequest(BaseModel):
    counted_cash: Decimal | None = None
    counted_pix: Decimal | None = None
    counted_debit: Decimal | None = None
    counted_credit: Decimal | None = None
    note: str | None = Field(default=None, max_length=2000)


class CashSessionValidateRequest(BaseModel):
    final_counted_cash: Decimal | None = None
    final_counted_pix: Decimal | None = None
    final_counted_debit: Decimal | None = None
    final_counted_credit: Decimal | None = None
    adjustment_note: str | None = Field(default=None, max_length=2000)


class CashMovementCreateRequest(BaseModel):
    kind: Literal["withdrawal", "deposit"]
    amount: Decimal
    description: str | None = Field(default=None, max_length=255)


class ExpectedTotalsResponse(BaseModel):
    opening_amount: Decimal
    sales_cash: Decimal
    sales_pix: Decimal
    sales_debit: Decimal
    sales_credit: Decimal
    withdrawals: Decimal
    deposits: Decimal
    expected_cash: Decimal
    expected_pix: Decimal
    expected_debit: Decimal
    expected_credit: Decimal
    expected_total: Decimal
    rejected_total: Decimal
    warnings: list[str]


class CashSessionSummary(BaseModel):
    id: str
    establishment_id: str
    status: str
    opened_at: datetime
    opened_by: str
    opening_amount: Decimal
    opening_note: str | None
    closed_at: datetime | None
    closed_by: str | None
    expected_cash: Decimal | None
    expected_pix: Decimal | None
    expected_debit: Decimal | None
    expected_credit: Decimal | None
    expected_total: Decimal | None
    counted_cash: Decimal | None
    counted_pix: Decimal | None
    counted_debit: Decimal | None
    counted_credit: Decimal | None
    difference_amount: Decimal | None
    closing_note: str | None
    requires_review: bool
    validated_at: datetime | None
    validated_by: str | None
    adjustment_note: str | None


class CashSessionCurrentResponse(BaseModel):
    has_open_session: bool
    session: CashSessionSummary | None
    totals: ExpectedTotalsResponse | None


class CashSessionListResponse(BaseModel):
    rows: list[CashSessionSummary]
    total: int


class CashMovementResponse(BaseModel):
    id: str
    session_id: str
    establishment_id: str
    kind: str
    amount: Decimal
    description: str | None
    actor_id: str
    created_at: datetime


class CashMovementListResponse(BaseModel):
    rows: list[CashMovementResponse]
    total: int


class CashSessionDetailResponse(BaseModel):
    session: CashSessionSummary
    movements: list[CashMovementResponse]


class AuditEventResponse(BaseModel):
    id: str
    action: str
    actor: str
    actor_role: str | None
    entity_type: str
    entity_id: str | None
    trace_id: str | None
    before: dict | None
    after: dict | None
    metadata: dict | None
    created_at: datetime


class AuditEventListResponse(BaseModel):
    rows: list[AuditEventResponse]
