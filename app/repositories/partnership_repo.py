import uuid

from sqlmodel import Session

from app.models.partnership import Partnership


class PartnershipRepository:
    """
    Data access layer for partnership inquiries.

    Listing goes through the CollectionGateway; this class only covers
    single-record reads and writes.
    """

    collection = Partnership.__tablename__

    def get_by_id(self, session: Session, partnership_id: uuid.UUID) -> Partnership | None:
        return session.get(Partnership, partnership_id)

    def create(self, session: Session, partnership: Partnership) -> Partnership:
        session.add(partnership)
        session.commit()
        session.refresh(partnership)
        return partnership

    def update(self, session: Session, partnership: Partnership) -> Partnership:
        session.add(partnership)
        session.commit()
        session.refresh(partnership)
        return partnership

    def delete(self, session: Session, partnership: Partnership) -> None:
        session.delete(partnership)
        session.commit()
