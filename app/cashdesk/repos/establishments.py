from sqlalchemy import select

from app.cashdesk.db.models import Establishment


class EstablishmentRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, establishment_id) -> Establishment | None:
        return self.db.execute(select(Establishment).where(Establishment.id == establishment_id)).scalars().first()
