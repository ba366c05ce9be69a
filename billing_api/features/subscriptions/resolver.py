"""
New-vs-update decision for subscription requests.

An account may hold at most one active subscription to plans without
`allow_multiple`. Requesting such a plan therefore updates the existing
active subscription (if any) instead of adding a second one. Plans with
`allow_multiple` always get a brand-new subscription.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from billing_api.models import Account, Plan, Subscription
from billing_api.models.base import as_utc

logger = logging.getLogger("billing_api.subscriptions")


def is_subscription_active(subscription: Subscription, now: Optional[datetime] = None) -> bool:
    """Active means not stopped and expiring in the future."""
    if subscription.date_stopped is not None:
        return False
    expires = as_utc(subscription.date_expires)
    if expires is None:
        return False
    return expires > (now or datetime.now(timezone.utc))


def active_subscriptions(account: Account, now: Optional[datetime] = None) -> List[Subscription]:
    return [sub for sub in account.subscriptions if is_subscription_active(sub, now)]


def resolve_subscription_to_update(
    account: Account,
    new_plan: Plan,
    old_plans: Iterable[Plan],
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    """Return the active subscription a request for `new_plan` should update, or None."""
    if new_plan is None or new_plan.allow_multiple:
        return None

    plans_by_id: Dict[int, Plan] = {plan.id: plan for plan in old_plans}

    def _without_allow_multiple(sub: Subscription) -> bool:
        plan = plans_by_id.get(sub.plan_id)
        return plan is not None and not plan.allow_multiple

    candidates = [sub for sub in active_subscriptions(account, now) if _without_allow_multiple(sub)]
    if len(candidates) > 1:
        # Only the first one is reconciled; the rest are left as they are.
        logger.warning(
            "subscription.multiple_exclusive_active",
            extra={
                "account_reference": account.reference,
                "subscription_ids": [sub.id for sub in candidates],
            },
        )
    return candidates[0] if candidates else None


def conflicting_exclusive_subscription(
    account: Account,
    subscription: Subscription,
    new_plan: Plan,
    old_plans: Iterable[Plan],
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    """Another active exclusive subscription that moving `subscription` to `new_plan` would collide with."""
    if new_plan is None or new_plan.allow_multiple:
        return None
    plans_by_id: Dict[int, Plan] = {plan.id: plan for plan in old_plans}
    for other in active_subscriptions(account, now):
        if other is subscription:
            continue
        plan = plans_by_id.get(other.plan_id)
        if plan is not None and not plan.allow_multiple:
            return other
    return None
