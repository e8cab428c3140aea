from sqlalchemy import select

from app.cashdesk.db.models import AuditEvent


class AuditRepository:
    def __init__(self, db):
        self.db = db

    def add(self, event: AuditEvent) -> AuditEvent:
        # committed by the caller together with the state change it describes
        self.db.add(event)
        self.db.flush()
        return event

    def list_events(self, *, tenant_id, entity_id: str | None = None, limit: int = 100, offset: int = 0):
        query = select(AuditEvent).where(AuditEvent.tenant_id == tenant_id)
        if entity_id:
            query = query.where(AuditEvent.entity_id == entity_id)
        query = query.order_by(AuditEvent.created_at.desc()).limit(limit).offset(offset)
        return self.db.execute(query).scalars().all()
