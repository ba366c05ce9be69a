from typing import Any, Dict

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from billing_api.models.base import Base, isoformat, utc_now


class User(Base):
    """A person logging in; belongs to exactly one Account (weak reference)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    email = Column(String(320), nullable=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    date_created = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    account = relationship("Account", lazy="joined")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "name": self.name,
            "email": self.email,
            "account": self.account.reference if self.account is not None else None,
            "dateCreated": isoformat(self.date_created),
        }
