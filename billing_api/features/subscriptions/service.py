"""
Subscription lifecycle.

Per subscription: NONE -> ACTIVE -> STOPPED, with ACTIVE -> ACTIVE on renewal
or plan change. Every operation is a plain sequence of steps that stops at
the first failure:

    resolve account -> look up plans -> decide new vs update
        -> payment provider -> mutate account -> save -> purge cache

A provider failure aborts before anything is saved, except in stop, which
keeps the cancellations the provider already accepted. A save failure after
a successful provider call is reported as PersistenceError; the provider-side
change is not rolled back.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from billing_api.core.errors import NotFoundError, ProviderError, ValidationError
from billing_api.core.logging import log_event
from billing_api.features.billing.provider import (
    PaymentDetails,
    PaymentProvider,
    ProviderSubscriptionResult,
    SubscriptionRequest,
)
from billing_api.features.cache.provider import CacheProvider
from billing_api.features.subscriptions.dates import (
    BILLING_INTERVALS,
    date_in_1_month,
    date_in_1_year,
    get_date_expires,
)
from billing_api.features.subscriptions.models import CreateSubscriptionBody, UpdateSubscriptionBody
from billing_api.features.subscriptions.repository import AccountRepository, PlanRepository
from billing_api.features.subscriptions.resolver import (
    conflicting_exclusive_subscription,
    resolve_subscription_to_update,
)
from billing_api.models import Account, DEFAULT_BILLING, Plan, Subscription, User


@dataclass
class RenewalOutcome:
    account: Account
    users: List[User] = field(default_factory=list)
    subscriptions: List[Subscription] = field(default_factory=list)
    interval: str = "month"
    interval_count: int = 1

    @property
    def message(self) -> str:
        return f"Updated account and {len(self.subscriptions)} subscription(s)"

    def webhook_payload(self) -> Dict[str, Any]:
        """Body of the outbound renewal notification."""
        return {
            "type": "renew",
            "account": self.account.to_dict(),
            "users": [user.to_dict() for user in self.users],
            "subscriptions": [sub.to_dict() for sub in self.subscriptions],
            "interval": self.interval,
            "intervalCount": self.interval_count,
        }


class SubscriptionService:
    def __init__(
        self,
        session: Session,
        payment_provider: PaymentProvider,
        cache_provider: CacheProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.accounts = AccountRepository(session)
        self.plans = PlanRepository(session)
        self.payment_provider = payment_provider
        self.cache_provider = cache_provider
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_subscriptions(self, *, account_reference: Optional[str] = None, user_reference: Optional[str] = None) -> List[Subscription]:
        account = self.accounts.resolve(account_reference, user_reference)
        return list(account.subscriptions)

    def read_subscription(self, subscription_id: str, *, account_reference: Optional[str] = None, user_reference: Optional[str] = None) -> Subscription:
        account = self.accounts.resolve(account_reference, user_reference)
        return self._find_subscription(account, subscription_id)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_subscription(
        self,
        body: CreateSubscriptionBody,
        *,
        account_reference: Optional[str] = None,
        user_reference: Optional[str] = None,
        ignore_payment_provider: bool = False,
    ) -> List[Subscription]:
        """
        Subscribe the account to `body.plan`, or move its existing exclusive
        subscription to that plan. Returns the account's full subscription list.

        `ignore_payment_provider` is for data migration only: the provider is
        not called and the new subscription carries no provider identifiers.
        """
        account = self.accounts.resolve(account_reference, user_reference)
        billing = self._check_billing(body.billing or DEFAULT_BILLING)
        new_plan = self._plan_for_reference(body.plan)
        old_plans = self.plans.plans_for_subscriptions(account.subscriptions)
        now = self.clock()
        existing = resolve_subscription_to_update(account, new_plan, old_plans, now)

        if body.email:
            account.email = body.email

        if ignore_payment_provider:
            existing = None
            result = ProviderSubscriptionResult(is_new=True)
        else:
            result = self._call_provider(
                self.payment_provider.create_or_update_subscription,
                user_reference=user_reference,
                account=account,
                existing_subscription=existing,
                new_subscription=SubscriptionRequest(plan=new_plan, billing=billing),
                payment=PaymentDetails(token=body.token, payment_method=body.payment_method),
            )

        date_expires = get_date_expires(billing, now)
        if existing is not None:
            subscription = existing
            subscription.plan = new_plan
            subscription.billing = billing
            subscription.date_expires = date_expires
            if result.payment_subscription_id:
                subscription.payment_subscription_id = result.payment_subscription_id
        else:
            subscription = Subscription(
                plan=new_plan,
                billing=billing,
                date_created=now,
                date_expires=date_expires,
                payment_subscription_id=result.payment_subscription_id,
            )
            account.subscriptions.append(subscription)
        if result.payment_customer_id:
            account.payment_customer_id = result.payment_customer_id

        self.accounts.save(account)
        self.cache_provider.purge_content_by_key(account.reference)

        log_event(
            "info",
            "subscription.updated" if existing is not None else "subscription.created",
            account_reference=account.reference,
            subscription_id=subscription.id,
            event_type="subscription.create",
            extra={
                "plan": new_plan.reference,
                "billing": billing,
                "provider": "ignored" if ignore_payment_provider else self.payment_provider.name,
                "provider_is_new": result.is_new,
            },
        )
        return list(account.subscriptions)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_subscription(
        self,
        subscription_id: str,
        body: UpdateSubscriptionBody,
        *,
        account_reference: Optional[str] = None,
        user_reference: Optional[str] = None,
    ) -> Subscription:
        """
        Change plan, billing interval or expiry of one subscription.

        The provider is told about the resulting plan/billing first. Body
        fields are then applied, and identifiers returned by the provider
        overwrite the stored ones.

        Moving onto a plan without `allow_multiple` is refused while another
        active subscription of the account already holds such a plan.
        """
        account = self.accounts.resolve(account_reference, user_reference)
        subscription = self._find_subscription(account, subscription_id)
        plan = self._plan_for_reference(body.plan) if body.plan else subscription.plan
        billing = self._check_billing(body.billing or subscription.billing or DEFAULT_BILLING)
        if plan is not subscription.plan:
            old_plans = self.plans.plans_for_subscriptions(account.subscriptions)
            conflict = conflicting_exclusive_subscription(account, subscription, plan, old_plans, self.clock())
            if conflict is not None:
                raise ValidationError(
                    f"Account {account.reference} already has an active subscription to plan "
                    f"{conflict.plan_reference}; update subscription {conflict.id} instead"
                )

        result = self._call_provider(
            self.payment_provider.update_subscription,
            user_reference=user_reference,
            account=account,
            subscription=subscription,
            changes=SubscriptionRequest(plan=plan, billing=billing),
            payment=PaymentDetails(token=body.token, payment_method=body.payment_method),
        )

        subscription.plan = plan
        subscription.billing = billing
        if body.date_expires is not None:
            subscription.date_expires = body.date_expires
        if result.payment_subscription_id:
            subscription.payment_subscription_id = result.payment_subscription_id
        if result.payment_customer_id:
            account.payment_customer_id = result.payment_customer_id

        self.accounts.save(account)
        self.cache_provider.purge_content_by_key(account.reference)

        log_event(
            "info",
            "subscription.updated",
            account_reference=account.reference,
            subscription_id=subscription.id,
            event_type="subscription.update",
            extra={"plan": plan.reference, "billing": billing},
        )
        return subscription

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def stop_subscriptions(
        self,
        subscription_id: Optional[str] = None,
        *,
        account_reference: Optional[str] = None,
        user_reference: Optional[str] = None,
    ) -> int:
        """
        Stop one subscription, or all of them when `subscription_id` is None.

        Provider cancellations run one after another. Already stopped
        subscriptions are skipped and not counted. When the provider rejects
        a cancellation, the ones it already accepted are saved as stopped
        before the error is raised.
        """
        account = self.accounts.resolve(account_reference, user_reference)
        now = self.clock()
        stopped = 0
        for subscription in list(account.subscriptions):
            if subscription_id is not None and subscription.id != subscription_id:
                continue
            if subscription.date_stopped is not None:
                continue
            try:
                self.payment_provider.delete_subscription(subscription)
            except ProviderError:
                if stopped:
                    self.accounts.save(account)
                    self.cache_provider.purge_content_by_key(account.reference)
                else:
                    self.accounts.discard()
                log_event(
                    "warning",
                    "subscription.stop_interrupted",
                    account_reference=account.reference,
                    subscription_id=subscription.id,
                    event_type="subscription.stop",
                    extra={"stopped_before_failure": stopped},
                )
                raise
            subscription.date_stopped = now
            stopped += 1
            log_event(
                "info",
                "subscription.stopped",
                account_reference=account.reference,
                subscription_id=subscription.id,
                event_type="subscription.stop",
            )

        self.cache_provider.purge_content_by_key(account.reference)
        self.accounts.save(account)
        return stopped

    # ------------------------------------------------------------------
    # Renew (inbound provider webhook)
    # ------------------------------------------------------------------

    def renew_subscriptions(self, headers: Dict[str, str], body: bytes) -> RenewalOutcome:
        notice = self.payment_provider.receive_renew_subscription(headers, body, self.accounts)
        now = self.clock()
        for subscription in notice.subscriptions:
            subscription.date_expires = date_in_1_year(now) if notice.interval == "year" else date_in_1_month(now)

        account = notice.account
        self.accounts.save(account)
        self.cache_provider.purge_content_by_key(account.reference)

        log_event(
            "info",
            "subscription.renewed",
            account_reference=account.reference,
            event_type="subscription.renew",
            extra={
                "subscriptions": len(notice.subscriptions),
                "interval": notice.interval,
                "interval_count": notice.interval_count,
            },
        )
        return RenewalOutcome(
            account=account,
            users=self.accounts.users_for(account),
            subscriptions=list(notice.subscriptions),
            interval=notice.interval,
            interval_count=notice.interval_count,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _plan_for_reference(self, reference: str) -> Plan:
        plan = self.plans.get_by_reference(reference)
        if plan is None:
            raise ValidationError(f"Plan {reference} does not exist")
        return plan

    @staticmethod
    def _check_billing(billing: str) -> str:
        if billing not in BILLING_INTERVALS:
            raise ValidationError(f"billing must be one of: {', '.join(BILLING_INTERVALS)}")
        return billing

    @staticmethod
    def _find_subscription(account: Account, subscription_id: str) -> Subscription:
        for subscription in account.subscriptions:
            if subscription.id == subscription_id:
                return subscription
        raise NotFoundError(f"Subscription {subscription_id} not found")

    def _call_provider(self, operation, *args, **kwargs):
        """Run a provider call; on rejection drop every unsaved change and re-raise."""
        try:
            return operation(*args, **kwargs)
        except ProviderError:
            self.accounts.discard()
            raise
