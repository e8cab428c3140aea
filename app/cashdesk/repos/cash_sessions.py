from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select, update

from app.cashdesk.db.models import SESSION_OPEN, SESSION_PENDING_REVIEW, CashSession


@dataclass(frozen=True)
class CashSessionQueryFilters:
    establishment_id: str
    status: str | None = None
    limit: int = 50
    offset: int = 0


class CashSessionRepository:
    def __init__(self, db):
        self.db = db

    def add(self, session: CashSession) -> CashSession:
        self.db.add(session)
        self.db.flush()
        return session

    def get_by_id(self, session_id, *, establishment_id, for_update: bool = False) -> CashSession | None:
        query = select(CashSession).where(
            CashSession.id == session_id,
            CashSession.establishment_id == establishment_id,
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_open_session_id(self, establishment_id):
        query = select(CashSession.id).where(
            CashSession.establishment_id == establishment_id,
            CashSession.status == SESSION_OPEN,
        )
        return self.db.execute(query).scalars().first()

    def get_open(self, establishment_id) -> CashSession | None:
        session_id = self.get_open_session_id(establishment_id)
        if session_id is None:
            return None
        return self.get_by_id(session_id, establishment_id=establishment_id)

    def compare_and_set(self, session_id, *, expected_status: str, values: dict) -> bool:
        """Apply ``values`` only if the row still has ``expected_status``."""
        result = self.db.execute(
            update(CashSession)
            .where(CashSession.id == session_id, CashSession.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def refresh(self, session: CashSession) -> CashSession:
        self.db.refresh(session)
        return session

    def list_sessions(self, filters: CashSessionQueryFilters) -> tuple[list[CashSession], int]:
        query = select(CashSession).where(CashSession.establishment_id == filters.establishment_id)
        count_query = (
            select(func.count())
            .select_from(CashSession)
            .where(CashSession.establishment_id == filters.establishment_id)
        )
        if filters.status:
            query = query.where(CashSession.status == filters.status)
            count_query = count_query.where(CashSession.status == filters.status)
        total = self.db.execute(count_query).scalar_one()
        rows = (
            self.db.execute(
                query.order_by(CashSession.opened_at.desc()).limit(filters.limit).offset(filters.offset)
            )
            .scalars()
            .all()
        )
        return rows, total

    def list_pending_review(self, establishment_id) -> list[CashSession]:
        query = (
            select(CashSession)
            .where(
                CashSession.establishment_id == establishment_id,
                CashSession.status == SESSION_PENDING_REVIEW,
            )
            .order_by(CashSession.closed_at.desc())
        )
        return self.db.execute(query).scalars().all()
