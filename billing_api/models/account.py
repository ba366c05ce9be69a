"""
Account aggregate.

An Account exclusively owns an ordered list of Subscriptions. Subscriptions
have no lifecycle of their own: they are created, changed and stopped
through the subscription service and saved together with their account.
Stopping is logical (date_stopped is stamped), rows are never deleted.
"""

import uuid
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Index
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from billing_api.models.base import Base, isoformat, utc_now

DEFAULT_BILLING = "month"


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    email = Column(String(320), nullable=True)

    # Provider-side customer record (exposed as metadata.paymentCustomerId)
    payment_customer_id = Column(String(255), nullable=True, index=True)

    date_created = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    subscriptions = relationship(
        "Subscription",
        back_populates="account",
        order_by="Subscription.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reference": self.reference,
            "name": self.name,
            "email": self.email,
            "metadata": {"paymentCustomerId": self.payment_customer_id},
            "subscriptions": [sub.to_dict() for sub in self.subscriptions],
            "dateCreated": isoformat(self.date_created),
        }


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    billing = Column(String(20), nullable=False, default=DEFAULT_BILLING)
    position = Column(Integer, nullable=False, default=0)

    date_created = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    date_expires = Column(DateTime(timezone=True), nullable=True)
    date_stopped = Column(DateTime(timezone=True), nullable=True)

    # Provider-side subscription record (exposed as metadata.paymentSubscriptionId)
    payment_subscription_id = Column(String(255), nullable=True, index=True)

    account = relationship("Account", back_populates="subscriptions")
    plan = relationship("Plan", lazy="selectin")

    __table_args__ = (
        Index("ix_subscriptions_account_position", "account_id", "position"),
    )

    @property
    def plan_reference(self) -> Optional[str]:
        return self.plan.reference if self.plan is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "plan": self.plan_reference,
            "billing": self.billing,
            "dateCreated": isoformat(self.date_created),
            "dateExpires": isoformat(self.date_expires),
            "dateStopped": isoformat(self.date_stopped),
            "metadata": {"paymentSubscriptionId": self.payment_subscription_id},
        }
