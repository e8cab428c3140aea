from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.cashdesk.core.config import settings
from app.cashdesk.core.deps import get_current_actor, get_current_token_data, require_request_context, resolve_establishment_id
from app.cashdesk.core.error_catalog import ErrorCatalog
from app.cashdesk.db.models import CashMovement, CashSession
from app.cashdesk.db.session import get_db
from app.cashdesk.repos.cash_sessions import CashSessionQueryFilters
from app.cashdesk.schemas.cash import (
    AuditEventListResponse,
    AuditEventResponse,
    CashMovementCreateRequest,
    CashMovementListResponse,
    CashMovementResponse,
    CashSessionCloseRequest,
    CashSessionCurrentResponse,
    CashSessionDetailResponse,
    CashSessionListResponse,
    CashSessionOpenRequest,
    CashSessionSummary,
    CashSessionValidateRequest,
    ExpectedTotalsResponse,
)
from app.cashdesk.services.audit import AuditService
from app.cashdesk.services.cash_movements import CashMovementService
from app.cashdesk.services.cash_sessions import CashSessionService, CountedTotals
from app.cashdesk.services.idempotency import IdempotencyService, extract_idempotency_key
from app.cashdesk.services.reconciliation import ExpectedTotals


router = APIRouter()


def _session_summary(session: CashSession) -> CashSessionSummary:
    return CashSessionSummary(
        id=str(session.id),
        establishment_id=str(session.establishment_id),
        status=session.status,
        opened_at=session.opened_at,
        opened_by=session.opened_by,
        opening_amount=session.opening_amount,
        opening_note=session.opening_note,
        closed_at=session.closed_at,
        closed_by=session.closed_by,
        expected_cash=session.expected_cash,
        expected_pix=session.expected_pix,
        expected_debit=session.expected_debit,
        expected_credit=session.expected_credit,
        expected_total=session.expected_total,
        counted_cash=session.counted_cash,
        counted_pix=session.counted_pix,
        counted_debit=session.counted_debit,
        counted_credit=session.counted_credit,
        difference_amount=session.difference_amount,
        closing_note=session.closing_note,
        requires_review=session.requires_review,
        validated_at=session.validated_at,
        validated_by=session.validated_by,
        adjustment_note=session.adjustment_note,
    )


def _totals_response(totals: ExpectedTotals) -> ExpectedTotalsResponse:
    return ExpectedTotalsResponse(
        opening_amount=totals.opening_amount,
        sales_cash=totals.sales.cash,
        sales_pix=totals.sales.pix,
        sales_debit=totals.sales.debit,
        sales_credit=totals.sales.credit,
        withdrawals=totals.withdrawals,
        deposits=totals.deposits,
        expected_cash=totals.cash,
        expected_pix=totals.pix,
        expected_debit=totals.debit,
        expected_credit=totals.credit,
        expected_total=totals.total,
        rejected_total=totals.rejected_total,
        warnings=list(totals.warnings),
    )


def _movement_response(movement: CashMovement) -> CashMovementResponse:
    return CashMovementResponse(
        id=str(movement.id),
        session_id=str(movement.session_id),
        establishment_id=str(movement.establishment_id),
        kind=movement.kind,
        amount=movement.amount,
        description=movement.description,
        actor_id=movement.actor_id,
        created_at=movement.created_at,
    )


def _start_idempotency(request: Request, db, *, establishment_id: str, payload: dict):
    idempotency_key = extract_idempotency_key(request.headers)
    if not idempotency_key:
        return None, None
    context, replay = IdempotencyService(db).start(
        tenant_id=establishment_id,
        endpoint=str(request.url.path),
        method=request.method,
        idempotency_key=idempotency_key,
        request_hash=IdempotencyService.fingerprint(payload),
    )
    if replay:
        return None, JSONResponse(
            status_code=replay.status_code,
            content=replay.response_body,
            headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
        )
    request.state.idempotency = context
    return context, None


def _finish(context, response):
    if context is not None:
        context.record_success(status_code=200, response_body=response.model_dump(mode="json"))
    return response


@router.get("/cash/sessions/current", response_model=CashSessionCurrentResponse)
def get_current_session(
    establishment_id: str | None = None,
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data, establishment_id)
    session, totals = CashSessionService(db).current_session(scoped_id)
    return CashSessionCurrentResponse(
        has_open_session=session is not None,
        session=_session_summary(session) if session else None,
        totals=_totals_response(totals) if totals else None,
    )


@router.get("/cash/sessions/pending-review", response_model=CashSessionListResponse)
def list_pending_review(
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    rows = CashSessionService(db).list_pending_review(scoped_id)
    return CashSessionListResponse(rows=[_session_summary(row) for row in rows], total=len(rows))


@router.get("/cash/sessions", response_model=CashSessionListResponse)
def list_sessions(
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    filters = CashSessionQueryFilters(
        establishment_id=scoped_id,
        status=status,
        limit=max(1, min(limit, settings.CASH_SESSION_LIST_MAX_PAGE_SIZE)),
        offset=max(0, offset),
    )
    rows, total = CashSessionService(db).list_sessions(filters)
    return CashSessionListResponse(rows=[_session_summary(row) for row in rows], total=total)


@router.post("/cash/sessions/open", response_model=CashSessionSummary)
def open_session(
    request: Request,
    payload: CashSessionOpenRequest,
    token_data=Depends(get_current_token_data),
    context=Depends(require_request_context),
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    idempotency, replay = _start_idempotency(
        request, db, establishment_id=scoped_id, payload=payload.model_dump(mode="json")
    )
    if replay:
        return replay
    session = CashSessionService(db, trace_id=context.trace_id).open_session(
        establishment_id=scoped_id,
        actor=actor,
        opening_amount=payload.opening_amount,
        note=payload.note,
    )
    return _finish(idempotency, _session_summary(session))


@router.get("/cash/sessions/{session_id}", response_model=CashSessionDetailResponse)
def get_session_detail(
    session_id: UUID,
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    session = CashSessionService(db).get_session(scoped_id, session_id)
    movements = CashMovementService(db).list_for_session(establishment_id=scoped_id, session_id=session.id)
    return CashSessionDetailResponse(
        session=_session_summary(session),
        movements=[_movement_response(row) for row in movements],
    )


@router.get("/cash/sessions/{session_id}/totals", response_model=ExpectedTotalsResponse)
def get_session_totals(
    session_id: UUID,
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    return _totals_response(CashSessionService(db).session_totals(scoped_id, session_id))


@router.post("/cash/sessions/{session_id}/close", response_model=CashSessionSummary)
def close_session(
    request: Request,
    session_id: UUID,
    payload: CashSessionCloseRequest,
    token_data=Depends(get_current_token_data),
    context=Depends(require_request_context),
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    idempotency, replay = _start_idempotency(
        request, db, establishment_id=scoped_id, payload=payload.model_dump(mode="json")
    )
    if replay:
        return replay
    session = CashSessionService(db, trace_id=context.trace_id).close_session(
        establishment_id=scoped_id,
        session_id=session_id,
        actor=actor,
        counted=CountedTotals(
            cash=payload.counted_cash,
            pix=payload.counted_pix,
            debit=payload.counted_debit,
            credit=payload.counted_credit,
        ),
        note=payload.note,
    )
    return _finish(idempotency, _session_summary(session))


@router.post("/cash/sessions/{session_id}/validate", response_model=CashSessionSummary)
def validate_session(
    request: Request,
    session_id: UUID,
    payload: CashSessionValidateRequest,
    token_data=Depends(get_current_token_data),
    context=Depends(require_request_context),
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    idempotency, replay = _start_idempotency(
        request, db, establishment_id=scoped_id, payload=payload.model_dump(mode="json")
    )
    if replay:
        return replay
    session = CashSessionService(db, trace_id=context.trace_id).validate_session(
        establishment_id=scoped_id,
        session_id=session_id,
        actor=actor,
        final_counted=CountedTotals(
            cash=payload.final_counted_cash,
            pix=payload.final_counted_pix,
            debit=payload.final_counted_debit,
            credit=payload.final_counted_credit,
        ),
        adjustment_note=payload.adjustment_note,
    )
    return _finish(idempotency, _session_summary(session))


@router.post("/cash/sessions/{session_id}/movements", response_model=CashMovementResponse)
def record_movement(
    request: Request,
    session_id: UUID,
    payload: CashMovementCreateRequest,
    token_data=Depends(get_current_token_data),
    context=Depends(require_request_context),
    actor=Depends(get_current_actor),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    idempotency, replay = _start_idempotency(
        request, db, establishment_id=scoped_id, payload=payload.model_dump(mode="json")
    )
    if replay:
        return replay
    movement = CashMovementService(db, trace_id=context.trace_id).record(
        establishment_id=scoped_id,
        session_id=session_id,
        actor=actor,
        kind=payload.kind,
        amount=payload.amount,
        description=payload.description,
    )
    return _finish(idempotency, _movement_response(movement))


@router.get("/cash/sessions/{session_id}/movements", response_model=CashMovementListResponse)
def list_movements(
    session_id: UUID,
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    rows = CashMovementService(db).list_for_session(establishment_id=scoped_id, session_id=session_id)
    return CashMovementListResponse(rows=[_movement_response(row) for row in rows], total=len(rows))


@router.get("/cash/audit", response_model=AuditEventListResponse)
def list_audit_events(
    session_id: UUID | None = None,
    limit: int = 100,
    offset: int = 0,
    token_data=Depends(get_current_token_data),
    db=Depends(get_db),
):
    scoped_id = resolve_establishment_id(token_data)
    rows = AuditService(db).list_events(
        tenant_id=scoped_id,
        entity_id=str(session_id) if session_id else None,
        limit=max(1, min(limit, 500)),
        offset=max(0, offset),
    )
    return AuditEventListResponse(
        rows=[
            AuditEventResponse(
                id=str(row.id),
                action=row.action,
                actor=row.actor,
                actor_role=row.actor_role,
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                trace_id=row.trace_id,
                before=row.before_payload,
                after=row.after_payload,
                metadata=row.event_metadata,
                created_at=row.created_at,
            )
            for row in rows
        ]
    )
