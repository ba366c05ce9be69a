"""Subscription API.

Two route families address the same account:
- /api/accounts/{accountReference}/subscriptions
- /api/users/{userReference}/subscriptions   (caller must be that user or admin)

plus POST /api/subscriptions/renew for the payment provider's renewal webhook
(no auth).
"""
from typing import Callable, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Request
from sqlalchemy.orm import Session

from billing_api.core.auth import require_authorized_user
from billing_api.core.config import settings
from billing_api.core.database import get_db
from billing_api.features.billing.provider import PaymentProvider
from billing_api.features.billing.service import get_payment_provider
from billing_api.features.cache.provider import CacheProvider, get_cache_provider
from billing_api.features.subscriptions.models import CreateSubscriptionBody, UpdateSubscriptionBody
from billing_api.features.subscriptions.service import SubscriptionService
from billing_api.features.subscriptions.webhooks import post_renew_webhook, renew_webhook_url


def get_subscription_service(
    db: Session = Depends(get_db),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    cache_provider: CacheProvider = Depends(get_cache_provider),
) -> SubscriptionService:
    return SubscriptionService(db, payment_provider, cache_provider)


def account_owner(accountReference: str = Path(..., description="Account reference")) -> Dict[str, str]:
    return {"account_reference": accountReference}


def user_owner(userReference: str = Path(..., description="User reference")) -> Dict[str, str]:
    return {"user_reference": userReference}


def build_subscription_router(prefix: str, owner: Callable[..., Dict[str, str]], dependencies=()) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["subscriptions"], dependencies=list(dependencies))

    @router.get("")
    def list_subscriptions(
        owner_refs: Dict[str, str] = Depends(owner),
        service: SubscriptionService = Depends(get_subscription_service),
    ):
        return [sub.to_dict() for sub in service.list_subscriptions(**owner_refs)]

    @router.get("/{subscriptionId}")
    def read_subscription(
        subscriptionId: str,
        owner_refs: Dict[str, str] = Depends(owner),
        service: SubscriptionService = Depends(get_subscription_service),
    ):
        return service.read_subscription(subscriptionId, **owner_refs).to_dict()

    @router.post("", status_code=201)
    def create_subscription(
        body: CreateSubscriptionBody,
        ignore_payment_provider: bool = Query(False, alias="ignorePaymentProvider"),
        owner_refs: Dict[str, str] = Depends(owner),
        service: SubscriptionService = Depends(get_subscription_service),
    ):
        """Subscribe to a plan, or switch the account's exclusive subscription to it.

        Returns the account's full subscription list.
        """
        subscriptions = service.create_subscription(
            body,
            ignore_payment_provider=ignore_payment_provider,
            **owner_refs,
        )
        return [sub.to_dict() for sub in subscriptions]

    @router.put("/{subscriptionId}")
    def update_subscription(
        subscriptionId: str,
        body: UpdateSubscriptionBody,
        owner_refs: Dict[str, str] = Depends(owner),
        service: SubscriptionService = Depends(get_subscription_service),
    ):
        return service.update_subscription(subscriptionId, body, **owner_refs).to_dict()

    @router.delete("")
    def stop_all_subscriptions(
        owner_refs: Dict[str, str] = Depends(owner),
        service: SubscriptionService = Depends(get_subscription_service),
    ):
        return _stopped_response(service.stop_subscriptions(None, **owner_refs))

    @router.delete("/{subscriptionId}")
    def stop_subscription(
        subscriptionId: str,
        owner_refs: Dict[str, str] = Depends(owner),
        service: SubscriptionService = Depends(get_subscription_service),
    ):
        return _stopped_response(service.stop_subscriptions(subscriptionId, **owner_refs))

    return router


def _stopped_response(count: int) -> Dict[str, object]:
    return {"message": f"Stopped {count} subscriptions", "count": count}


account_router = build_subscription_router("/api/accounts/{accountReference}/subscriptions", account_owner)
user_router = build_subscription_router(
    "/api/users/{userReference}/subscriptions",
    user_owner,
    dependencies=[Depends(require_authorized_user)],
)

renew_router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@renew_router.post("/renew")
async def renew_subscriptions(
    request: Request,
    background_tasks: BackgroundTasks,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Inbound renewal webhook from the payment provider.

    Answers as soon as the account is saved; the optional outbound
    notification is sent afterwards and cannot change this response.
    """
    body = await request.body()
    outcome = service.renew_subscriptions(dict(request.headers), body)

    url: Optional[str] = renew_webhook_url()
    if url:
        background_tasks.add_task(
            post_renew_webhook,
            url,
            outcome.webhook_payload(),
            settings.WEBHOOK_TIMEOUT_SECONDS,
        )
    return {"message": outcome.message}
