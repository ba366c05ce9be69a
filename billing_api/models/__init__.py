from billing_api.models.base import Base
from billing_api.models.plan import Plan, Service, plan_services
from billing_api.models.account import Account, Subscription, DEFAULT_BILLING
from billing_api.models.user import User

__all__ = [
    "Base",
    "Plan",
    "Service",
    "plan_services",
    "Account",
    "Subscription",
    "DEFAULT_BILLING",
    "User",
]
