"""
Content cache invalidation.

After a subscription change the CDN content cached for the account is
purged by surrogate key (the account reference). Purging is best effort:
failures are logged and never fail the request.
"""
import logging
from typing import Optional, Protocol

import httpx

from billing_api.core.config import settings

logger = logging.getLogger("billing_api.cache")

FASTLY_API_URL = "https://api.fastly.com"
PURGE_TIMEOUT_SECONDS = 5


class CacheProvider(Protocol):
    name: str

    def purge_content_by_key(self, key: str) -> None:
        ...


class NoopCacheProvider:
    name = "none"

    def purge_content_by_key(self, key: str) -> None:
        logger.debug("cache.purge.skipped", extra={"account_reference": key})


class FastlyCacheProvider:
    name = "fastly"

    def __init__(self, api_key: str, service_id: str, client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.service_id = service_id
        self.client = client

    def purge_content_by_key(self, key: str) -> None:
        url = f"{FASTLY_API_URL}/service/{self.service_id}/purge/{key}"
        headers = {"Fastly-Key": self.api_key, "Accept": "application/json"}
        try:
            if self.client is not None:
                response = self.client.post(url, headers=headers, timeout=PURGE_TIMEOUT_SECONDS)
            else:
                response = httpx.post(url, headers=headers, timeout=PURGE_TIMEOUT_SECONDS)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[cache] purge failed for {key}: {e}", extra={"account_reference": key})
            return
        logger.info("cache.purged", extra={"account_reference": key})


def build_cache_provider(settings_obj=None) -> CacheProvider:
    cfg = settings_obj or settings
    if getattr(cfg, "CACHE_PROVIDER", "none") == "fastly":
        return FastlyCacheProvider(api_key=cfg.FASTLY_API_KEY, service_id=cfg.FASTLY_SERVICE_ID)
    return NoopCacheProvider()


def get_cache_provider() -> CacheProvider:
    """FastAPI dependency returning the configured cache provider."""
    return build_cache_provider()
