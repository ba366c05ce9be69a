"""
Stripe payment provider implementation.

Implements the PaymentProvider protocol using the Stripe API.
Stripe price ids follow the "{planReference}_{billing}" convention,
e.g. "pro_month" or "pro_year".
"""
import json
import logging
import os
from typing import Dict, Any, Optional
import stripe

from billing_api.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    PaymentDetails,
    ProviderSubscriptionResult,
    RenewalNotice,
    SubscriptionRequest,
)
from billing_api.models import Account, Subscription

logger = logging.getLogger("billing_api.stripe")

RENEWAL_EVENT_TYPE = "invoice.payment_succeeded"


class StripeProvider:
    """Stripe implementation of PaymentProvider protocol."""

    name = "stripe"

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """
        Initialize Stripe provider.

        Args:
            secret_key: Stripe secret key (defaults to STRIPE_SECRET_KEY env var)
            webhook_secret: Stripe webhook secret (defaults to STRIPE_WEBHOOK_SECRET env var)
        """
        self.secret_key = secret_key or os.getenv("STRIPE_SECRET_KEY")
        self.webhook_secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    @staticmethod
    def price_id(plan_reference: str, billing: str) -> str:
        return f"{plan_reference}_{billing}"

    def ensure_customer(self, account: Account, payment: PaymentDetails) -> str:
        """Return the account's Stripe customer, creating it on first purchase."""
        try:
            if account.payment_customer_id:
                if payment.token:
                    stripe.Customer.modify(account.payment_customer_id, source=payment.token)
                return account.payment_customer_id

            customer_data: Dict[str, Any] = {
                "metadata": {"accountReference": account.reference}
            }
            if account.email:
                customer_data["email"] = account.email
            if payment.token:
                customer_data["source"] = payment.token

            customer = stripe.Customer.create(**customer_data)
            return customer["id"]
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe customer creation failed: {e}")

    def create_or_update_subscription(
        self,
        *,
        user_reference: Optional[str],
        account: Account,
        existing_subscription: Optional[Subscription],
        new_subscription: SubscriptionRequest,
        payment: PaymentDetails,
    ) -> ProviderSubscriptionResult:
        had_customer = bool(account.payment_customer_id)
        customer_id = self.ensure_customer(account, payment)

        if existing_subscription is not None and existing_subscription.payment_subscription_id:
            result = self._modify(existing_subscription.payment_subscription_id, new_subscription, payment)
            return ProviderSubscriptionResult(
                is_new=False,
                payment_subscription_id=result,
                payment_customer_id=customer_id,
            )

        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": self.price_id(new_subscription.plan.reference, new_subscription.billing)}],
            "metadata": {"accountReference": account.reference},
        }
        if user_reference:
            params["metadata"]["userReference"] = user_reference
        if payment.payment_method:
            params["default_payment_method"] = payment.payment_method

        try:
            created = stripe.Subscription.create(**params)
        except stripe.StripeError as e:
            if not had_customer:
                self._drop_customer(customer_id)
            raise BillingProviderError(f"Stripe subscription creation failed: {e}")

        return ProviderSubscriptionResult(
            is_new=True,
            payment_subscription_id=created["id"],
            payment_customer_id=customer_id,
        )

    def _drop_customer(self, customer_id: str) -> None:
        """Remove a customer created for a purchase that did not go through."""
        try:
            stripe.Customer.delete(customer_id)
        except stripe.StripeError as e:
            logger.warning(
                "stripe.customer.orphaned",
                extra={"payment_customer_id": customer_id, "error": str(e)},
            )

    def update_subscription(
        self,
        *,
        user_reference: Optional[str],
        account: Account,
        subscription: Subscription,
        changes: SubscriptionRequest,
        payment: PaymentDetails,
    ) -> ProviderSubscriptionResult:
        if not subscription.payment_subscription_id:
            # Nothing linked on Stripe yet: start billing for it now
            return self.create_or_update_subscription(
                user_reference=user_reference,
                account=account,
                existing_subscription=None,
                new_subscription=changes,
                payment=payment,
            )
        customer_id = self.ensure_customer(account, payment)
        remote_id = self._modify(subscription.payment_subscription_id, changes, payment)
        return ProviderSubscriptionResult(is_new=False, payment_subscription_id=remote_id, payment_customer_id=customer_id)

    def _modify(self, remote_id: str, changes: SubscriptionRequest, payment: PaymentDetails) -> str:
        try:
            remote = stripe.Subscription.retrieve(remote_id)
            item_id = remote["items"]["data"][0]["id"]
            params: Dict[str, Any] = {
                "items": [{"id": item_id, "price": self.price_id(changes.plan.reference, changes.billing)}],
            }
            if payment.payment_method:
                params["default_payment_method"] = payment.payment_method
            updated = stripe.Subscription.modify(remote_id, **params)
            return updated["id"]
        except (KeyError, IndexError) as e:
            raise BillingProviderError(f"Stripe subscription {remote_id} has no items: {e}")
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription update failed: {e}")

    def delete_subscription(self, subscription: Subscription) -> None:
        if not subscription.payment_subscription_id:
            return
        try:
            stripe.Subscription.cancel(subscription.payment_subscription_id)
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe subscription cancellation failed: {e}")

    def receive_renew_subscription(self, headers: Dict[str, str], body: bytes, accounts) -> RenewalNotice:
        """Verify the Stripe signature and parse a paid invoice. Unsigned events are refused."""
        if not self.webhook_secret:
            raise BillingWebhookError("Renewals are disabled: STRIPE_WEBHOOK_SECRET is not configured")
        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")
        try:
            stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        try:
            event = json.loads(body)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")

        return self._parse_renewal(event, accounts)

    def _parse_renewal(self, event: Dict[str, Any], accounts) -> RenewalNotice:
        event_type = event.get("type")
        if event_type != RENEWAL_EVENT_TYPE:
            raise BillingWebhookError(f"Unsupported event type: {event_type}")

        invoice = event.get("data", {}).get("object", {})
        customer_id = invoice.get("customer")
        remote_subscription_id = invoice.get("subscription")
        if not customer_id or not remote_subscription_id:
            raise BillingWebhookError("Invoice is missing customer or subscription")

        interval, interval_count = "month", 1
        lines = invoice.get("lines", {}).get("data", [])
        if lines:
            recurring = (
                lines[0].get("plan")
                or lines[0].get("price", {}).get("recurring")
                or {}
            )
            interval = recurring.get("interval") or interval
            interval_count = recurring.get("interval_count") or interval_count

        account = accounts.get_by_payment_customer_id(customer_id)
        if account is None:
            raise BillingWebhookError(f"No account found for customer {customer_id}")

        subscriptions = [
            sub for sub in account.subscriptions
            if sub.payment_subscription_id == remote_subscription_id
        ]
        logger.info(
            "stripe.renewal.parsed",
            extra={"account_reference": account.reference, "subscriptions": len(subscriptions)},
        )
        return RenewalNotice(
            account=account,
            subscriptions=subscriptions,
            interval=interval,
            interval_count=int(interval_count),
        )
