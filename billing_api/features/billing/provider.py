"""
Payment provider protocol.

Defines the interface the subscription service uses to talk to an external
billing system (Stripe, or none at all). Only implementations look at
provider-specific payloads; the service sees the dataclasses below.
"""
from typing import Protocol, Dict, List, Optional
from dataclasses import dataclass, field

from billing_api.core.errors import ProviderError, WebhookError
from billing_api.models import Account, Plan, Subscription


@dataclass
class PaymentDetails:
    """Payment input forwarded from the request body."""
    token: Optional[str] = None
    payment_method: Optional[str] = None


@dataclass
class SubscriptionRequest:
    """The plan and billing interval a subscription should end up with."""
    plan: Plan
    billing: str = "month"


@dataclass
class ProviderSubscriptionResult:
    """Outcome of a create/update call on the provider."""
    is_new: bool
    payment_subscription_id: Optional[str] = None
    payment_customer_id: Optional[str] = None


@dataclass
class RenewalNotice:
    """A parsed inbound renewal webhook."""
    account: Account
    subscriptions: List[Subscription] = field(default_factory=list)
    interval: str = "month"
    interval_count: int = 1


class PaymentProvider(Protocol):
    """
    Protocol for payment providers.

    Implementations must handle:
    - Creating or changing the provider-side subscription
    - Cancelling it
    - Verifying and parsing renewal webhooks
    """

    name: str

    def create_or_update_subscription(
        self,
        *,
        user_reference: Optional[str],
        account: Account,
        existing_subscription: Optional[Subscription],
        new_subscription: SubscriptionRequest,
        payment: PaymentDetails,
    ) -> ProviderSubscriptionResult:
        """
        Create a provider subscription, or change `existing_subscription` to the new plan.

        Returns:
            Whether a new provider subscription was created, plus its identifiers

        Raises:
            BillingProviderError: If the provider rejects the operation
        """
        ...

    def update_subscription(
        self,
        *,
        user_reference: Optional[str],
        account: Account,
        subscription: Subscription,
        changes: SubscriptionRequest,
        payment: PaymentDetails,
    ) -> ProviderSubscriptionResult:
        """
        Change plan and/or billing interval of an existing subscription.

        Raises:
            BillingProviderError: If the provider rejects the operation
        """
        ...

    def delete_subscription(self, subscription: Subscription) -> None:
        """
        Cancel the provider-side subscription (no-op when none is linked).

        Raises:
            BillingProviderError: If cancellation fails
        """
        ...

    def receive_renew_subscription(self, headers: Dict[str, str], body: bytes, accounts) -> RenewalNotice:
        """
        Verify and parse an inbound renewal webhook.

        Args:
            headers: HTTP headers (signature header where the provider uses one)
            body: Raw webhook body
            accounts: AccountRepository used to find the affected account

        Raises:
            BillingWebhookError: If the payload is invalid or names no known account
        """
        ...


class BillingProviderError(ProviderError):
    """Base exception for payment provider errors."""
    pass


class BillingWebhookError(WebhookError):
    """Exception for webhook processing errors."""
    pass
