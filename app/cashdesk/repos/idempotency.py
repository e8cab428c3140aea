from __future__ import annotations

from sqlalchemy import select

from app.cashdesk.db.models import IdempotencyRecord


class IdempotencyRepository:
    """Idempotency records live outside the cash transaction; every write commits on its own."""

    def __init__(self, db):
        self.db = db

    def find(self, lookup: dict) -> IdempotencyRecord | None:
        query = select(IdempotencyRecord).where(
            *(getattr(IdempotencyRecord, column) == value for column, value in lookup.items())
        )
        return self.db.execute(query).scalars().first()

    def save(self, record: IdempotencyRecord) -> IdempotencyRecord:
        self.db.add(record)
        self.db.commit()
        return record
