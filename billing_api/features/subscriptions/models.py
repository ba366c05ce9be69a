"""Request bodies accepted by the subscription endpoints."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

BillingInterval = Literal["month", "year"]


class CreateSubscriptionBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    plan: str = Field(..., min_length=1, description="Plan reference")
    billing: BillingInterval = "month"
    token: Optional[str] = Field(default=None, description="Card token from the payment provider's client SDK")
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
    email: Optional[str] = None


class UpdateSubscriptionBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    plan: Optional[str] = Field(default=None, min_length=1, description="New plan reference")
    billing: Optional[BillingInterval] = None
    date_expires: Optional[datetime] = Field(default=None, alias="dateExpires")
    token: Optional[str] = None
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
