import logging
from unittest.mock import MagicMock

import httpx

from billing_api.core.config import Settings
from billing_api.features.cache.provider import (
    FastlyCacheProvider,
    NoopCacheProvider,
    build_cache_provider,
)


def test_fastly_purges_by_surrogate_key():
    client = MagicMock()
    client.post.return_value = httpx.Response(200, request=httpx.Request("POST", "https://api.fastly.com"))

    FastlyCacheProvider(api_key="fk_123", service_id="svc_1", client=client).purge_content_by_key("acme")

    url = client.post.call_args.args[0]
    assert url == "https://api.fastly.com/service/svc_1/purge/acme"
    assert client.post.call_args.kwargs["headers"]["Fastly-Key"] == "fk_123"


def test_fastly_failure_is_logged_not_raised(caplog):
    client = MagicMock()
    client.post.side_effect = httpx.ConnectError("connection refused")

    with caplog.at_level(logging.WARNING, logger="billing_api.cache"):
        FastlyCacheProvider(api_key="fk_123", service_id="svc_1", client=client).purge_content_by_key("acme")

    assert any("purge failed" in r.getMessage() for r in caplog.records)


def test_fastly_error_status_is_logged_not_raised(caplog):
    client = MagicMock()
    client.post.return_value = httpx.Response(503, request=httpx.Request("POST", "https://api.fastly.com"))

    with caplog.at_level(logging.WARNING, logger="billing_api.cache"):
        FastlyCacheProvider(api_key="fk_123", service_id="svc_1", client=client).purge_content_by_key("acme")

    assert any("purge failed" in r.getMessage() for r in caplog.records)


def test_cache_provider_selected_by_config():
    assert isinstance(build_cache_provider(Settings(CACHE_PROVIDER="none")), NoopCacheProvider)
    fastly = build_cache_provider(Settings(CACHE_PROVIDER="fastly", FASTLY_API_KEY="k", FASTLY_SERVICE_ID="s"))
    assert isinstance(fastly, FastlyCacheProvider)
