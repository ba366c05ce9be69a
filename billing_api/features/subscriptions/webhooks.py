"""
Outbound renewal notification.

Runs after the inbound renewal has been answered. Delivery is attempted once;
failures are logged and never retried.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from billing_api.core.config import settings

logger = logging.getLogger("billing_api.webhooks")

WEBHOOK_TIMEOUT_SECONDS = 10


def renew_webhook_url(settings_obj=None) -> Optional[str]:
    cfg = settings_obj or settings
    return getattr(cfg, "WEBHOOK_RENEW_SUBSCRIPTION", None) or None


def post_renew_webhook(url: str, payload: Dict[str, Any], timeout: float = WEBHOOK_TIMEOUT_SECONDS) -> bool:
    """POST the renewal payload as JSON. Returns True on a 2xx answer."""
    body_bytes = json.dumps(payload, default=str).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    account_reference = (payload.get("account") or {}).get("reference")
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.post(url, content=body_bytes, headers=headers)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(
            f"[webhooks] renew notification to {url} failed: {e}",
            extra={"account_reference": account_reference, "event_type": "renew"},
        )
        return False

    logger.info(
        "webhook.renew.delivered",
        extra={"account_reference": account_reference, "event_type": "renew", "status": response.status_code},
    )
    return True
