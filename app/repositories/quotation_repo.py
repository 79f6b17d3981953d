import uuid

from sqlmodel import Session

from app.models.quotation import Quotation


class QuotationRepository:
    """Data access layer for quotation requests."""

    collection = Quotation.__tablename__

    def get_by_id(self, session: Session, quotation_id: uuid.UUID) -> Quotation | None:
        return session.get(Quotation, quotation_id)

    def create(self, session: Session, quotation: Quotation) -> Quotation:
        session.add(quotation)
        session.commit()
        session.refresh(quotation)
        return quotation

    def update(self, session: Session, quotation: Quotation) -> Quotation:
        session.add(quotation)
        session.commit()
        session.refresh(quotation)
        return quotation
