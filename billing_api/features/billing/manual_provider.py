"""
Provider used when no external billing system is configured.

Nothing is charged. Renewals arrive as plain JSON:
    {"account": "<accountReference>", "subscriptions": ["<id>", ...],
     "interval": "month" | "year", "intervalCount": 1}

and must carry an `x-billing-signature: t=<unix ts>,v1=<hex>` header, an
HMAC-SHA256 of "<ts>." + raw body keyed with MANUAL_WEBHOOK_SECRET. Without a
configured secret every renewal is refused.
"""
import hashlib
import hmac
import json
import time
from typing import Dict, Optional

from billing_api.features.billing.provider import (
    BillingWebhookError,
    PaymentDetails,
    ProviderSubscriptionResult,
    RenewalNotice,
    SubscriptionRequest,
)
from billing_api.models import Account, Subscription

SIGNATURE_HEADER = "x-billing-signature"
REPLAY_WINDOW_SECONDS = 300


def sign_renewal(secret: str, timestamp: int, body: bytes) -> str:
    """Signature header value for a renewal body."""
    signed_content = f"{timestamp}.".encode() + body
    digest = hmac.new(secret.encode(), signed_content, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_renewal(secret: str, header: Optional[str], body: bytes, tolerance_seconds: int = REPLAY_WINDOW_SECONDS) -> None:
    if not header:
        raise BillingWebhookError(f"Missing {SIGNATURE_HEADER} header")
    parts = dict(part.strip().split("=", 1) for part in header.split(",") if "=" in part)
    try:
        timestamp = int(parts.get("t", ""))
    except ValueError:
        raise BillingWebhookError("Invalid signature: bad timestamp")
    if abs(int(time.time()) - timestamp) > tolerance_seconds:
        raise BillingWebhookError("Invalid signature: timestamp outside the replay window")

    expected = sign_renewal(secret, timestamp, body).split("v1=", 1)[1]
    if not hmac.compare_digest(parts.get("v1", ""), expected):
        raise BillingWebhookError("Invalid signature")


class ManualProvider:
    name = "manual"

    def __init__(self, webhook_secret: Optional[str] = None):
        self.webhook_secret = webhook_secret

    def create_or_update_subscription(
        self,
        *,
        user_reference: Optional[str],
        account: Account,
        existing_subscription: Optional[Subscription],
        new_subscription: SubscriptionRequest,
        payment: PaymentDetails,
    ) -> ProviderSubscriptionResult:
        return ProviderSubscriptionResult(is_new=existing_subscription is None)

    def update_subscription(
        self,
        *,
        user_reference: Optional[str],
        account: Account,
        subscription: Subscription,
        changes: SubscriptionRequest,
        payment: PaymentDetails,
    ) -> ProviderSubscriptionResult:
        return ProviderSubscriptionResult(is_new=False)

    def delete_subscription(self, subscription: Subscription) -> None:
        return None

    def receive_renew_subscription(self, headers: Dict[str, str], body: bytes, accounts) -> RenewalNotice:
        if not self.webhook_secret:
            raise BillingWebhookError("Renewals are disabled: MANUAL_WEBHOOK_SECRET is not configured")
        verify_renewal(self.webhook_secret, headers.get(SIGNATURE_HEADER), body or b"")

        try:
            payload = json.loads(body or b"{}")
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        if not isinstance(payload, dict):
            raise BillingWebhookError("Invalid payload: expected a JSON object")

        reference = payload.get("account")
        if not reference:
            raise BillingWebhookError("Missing account reference")
        account = accounts.get_by_reference(reference)
        if account is None:
            raise BillingWebhookError(f"Account {reference} not found")

        wanted = set(payload.get("subscriptions") or [])
        subscriptions = [sub for sub in account.subscriptions if sub.id in wanted]

        try:
            interval_count = int(payload.get("intervalCount") or 1)
        except (TypeError, ValueError):
            raise BillingWebhookError("intervalCount must be an integer")

        return RenewalNotice(
            account=account,
            subscriptions=subscriptions,
            interval=payload.get("interval") or "month",
            interval_count=interval_count,
        )
