"""
Plan catalog models.

A Plan is read-only reference data for the subscription engine. `price`
maps a billing time unit ("month", "year") to an amount and also carries the
`vatIncluded` flag, e.g. {"month": 100, "year": 1000, "vatIncluded": true}.
"""

from typing import Any, Dict

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Table, Text
from sqlalchemy.orm import relationship

from billing_api.models.base import Base, isoformat, utc_now


plan_services = Table(
    "plan_services",
    Base.metadata,
    Column("plan_id", Integer, ForeignKey("plans.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", Integer, ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
)


class Service(Base):
    """A capability bundled into one or more plans."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    date_created = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "name": self.name,
            "description": self.description,
            "dateCreated": isoformat(self.date_created),
        }


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    price = Column(JSON, nullable=False, default=dict)
    allow_multiple = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=True)
    date_created = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    services = relationship("Service", secondary=plan_services, order_by="Service.reference", lazy="selectin")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "name": self.name,
            "description": self.description,
            "price": dict(self.price or {}),
            "allowMultiple": bool(self.allow_multiple),
            "position": self.position,
            "services": [service.reference for service in self.services],
            "dateCreated": isoformat(self.date_created),
        }
