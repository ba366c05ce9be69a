"""
Payment provider selection.

The provider is chosen once from PAYMENT_PROVIDER; everything else talks
to the PaymentProvider protocol. Stripe-specific code lives in
stripe_provider.py only.
"""
from billing_api.core.config import settings
from billing_api.features.billing.manual_provider import ManualProvider
from billing_api.features.billing.provider import PaymentProvider, BillingProviderError
from billing_api.features.billing.stripe_provider import StripeProvider


def build_payment_provider(settings_obj=None) -> PaymentProvider:
    cfg = settings_obj or settings
    name = getattr(cfg, "PAYMENT_PROVIDER", "manual")
    if name == "stripe":
        return StripeProvider(
            secret_key=cfg.STRIPE_SECRET_KEY,
            webhook_secret=cfg.STRIPE_WEBHOOK_SECRET,
        )
    if name == "manual":
        return ManualProvider(webhook_secret=cfg.MANUAL_WEBHOOK_SECRET)
    raise BillingProviderError(f"Unknown payment provider: {name}")


def get_payment_provider() -> PaymentProvider:
    """FastAPI dependency returning the configured provider."""
    return build_payment_provider()
