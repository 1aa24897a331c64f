"""Owner repository - Database operations for owners and their ledger"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Owner, OwnerTransaction, User


class OwnerRepository:
    """Repository for owner database operations"""

    @staticmethod
    def get_owner(db: Session, owner_id: str) -> Optional[Owner]:
        return (
            db.query(Owner)
            .options(joinedload(Owner.wallet), joinedload(Owner.user))
            .filter(Owner.id == owner_id)
            .first()
        )

    @staticmethod
    def list_owners(db: Session) -> list[Owner]:
        return (
            db.query(Owner)
            .options(joinedload(Owner.wallet), joinedload(Owner.user))
            .order_by(Owner.name.asc())
            .all()
        )

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def list_transactions(db: Session, owner_id: str) -> list[OwnerTransaction]:
        return (
            db.query(OwnerTransaction)
            .filter(OwnerTransaction.owner_id == owner_id)
            .order_by(OwnerTransaction.date.desc())
            .all()
        )

    @staticmethod
    def delete_owner(db: Session, owner: Owner) -> None:
        if owner.user:
            owner.user.owner_id = None
        db.delete(owner)
        db.commit()
