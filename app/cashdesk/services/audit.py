import logging
from dataclasses import dataclass

from app.cashdesk.core.clock import utcnow
from app.cashdesk.db.models import AuditEvent
from app.cashdesk.repos.audit import AuditRepository

logger = logging.getLogger("cashdesk.audit")

CASH_OPEN = "cash.open"
CASH_CLOSE = "cash.close"
CASH_VALIDATE = "cash.validate"


@dataclass
class AuditEventPayload:
    tenant_id: str
    actor: str
    action: str
    entity_type: str
    entity_id: str | None
    before: dict | None
    after: dict | None
    metadata: dict | None = None
    trace_id: str | None = None
    actor_role: str | None = None
    result: str = "success"


class AuditService:
    """Append-only audit trail for cash session transitions.

    Events are staged on the caller's transaction and become visible only when
    the state change they describe commits. A failure here aborts the
    transition instead of being swallowed.
    """

    def __init__(self, db):
        self.repo = AuditRepository(db)

    def record_event(self, payload: AuditEventPayload) -> AuditEvent:
        metadata = dict(payload.metadata or {})
        metadata.setdefault("actor_role", payload.actor_role)
        event = AuditEvent(
            tenant_id=payload.tenant_id,
            actor=payload.actor,
            actor_role=payload.actor_role,
            action=payload.action,
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            trace_id=payload.trace_id,
            before_payload=payload.before,
            after_payload=payload.after,
            event_metadata=metadata,
            result=payload.result,
            created_at=utcnow(),
        )
        self.repo.add(event)
        logger.debug("audit event staged action=%s entity_id=%s", payload.action, payload.entity_id)
        return event

    def list_events(self, *, tenant_id, entity_id: str | None = None, limit: int = 100, offset: int = 0):
        return self.repo.list_events(tenant_id=tenant_id, entity_id=entity_id, limit=limit, offset=offset)
