import uuid

from sqlmodel import Session

from app.models.user import User
from app.models.vendor import Vendor, VendorActivity


class VendorRepository:
    """
    Data access layer for vendors and their activity log.

    Vendor and identity rows share a primary key and are always written
    together in one commit (`save_with_identity`): a single commit is the
    store's all-or-nothing batch, so vendors.status and users.status can
    never be left disagreeing.
    """

    collection = Vendor.__tablename__
    activity_collection = VendorActivity.__tablename__

    # ----- Vendors -----

    def get_by_id(self, session: Session, vendor_id: uuid.UUID) -> Vendor | None:
        return session.get(Vendor, vendor_id)

    def save_with_identity(self, session: Session, vendor: Vendor, user: User) -> Vendor:
        """
        Write a vendor row and its co-keyed users row atomically.

        On any failure the session is rolled back and nothing is written.
        """
        try:
            session.add(user)
            session.add(vendor)
            session.commit()
        except Exception:
            session.rollback()
            raise

        session.refresh(vendor)
        session.refresh(user)
        return vendor

    def update(self, session: Session, vendor: Vendor) -> Vendor:
        """Persist vendor-only fields (documents, profile)."""
        session.add(vendor)
        session.commit()
        session.refresh(vendor)
        return vendor

    # ----- Activity -----

    def add_activity(self, session: Session, entry: VendorActivity) -> VendorActivity:
        """Append an activity entry. Entries are never updated or deleted."""
        try:
            session.add(entry)
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(entry)
        return entry
