"""Outbound renewal notification delivery."""
import json
import logging
from unittest.mock import MagicMock, patch

import httpx

from billing_api.core.config import Settings
from billing_api.features.subscriptions.webhooks import post_renew_webhook, renew_webhook_url

PAYLOAD = {"type": "renew", "account": {"reference": "acme"}, "users": [], "subscriptions": []}


def _client_returning(response=None, error=None):
    client = MagicMock()
    client.__enter__.return_value = client
    if error is not None:
        client.post.side_effect = error
    else:
        client.post.return_value = response
    return client


def test_posts_json_payload():
    response = httpx.Response(204, request=httpx.Request("POST", "https://hooks.example.test"))
    client = _client_returning(response)
    with patch("billing_api.features.subscriptions.webhooks.httpx.Client", return_value=client):
        assert post_renew_webhook("https://hooks.example.test", PAYLOAD, timeout=3) is True

    url = client.post.call_args.args[0]
    assert url == "https://hooks.example.test"
    assert json.loads(client.post.call_args.kwargs["content"]) == PAYLOAD


def test_failure_is_logged_only(caplog):
    client = _client_returning(error=httpx.ConnectTimeout("timed out"))
    with patch("billing_api.features.subscriptions.webhooks.httpx.Client", return_value=client):
        with caplog.at_level(logging.WARNING, logger="billing_api.webhooks"):
            assert post_renew_webhook("https://hooks.example.test", PAYLOAD) is False
    assert any("renew notification" in r.getMessage() for r in caplog.records)


def test_error_status_counts_as_failure():
    response = httpx.Response(500, request=httpx.Request("POST", "https://hooks.example.test"))
    with patch("billing_api.features.subscriptions.webhooks.httpx.Client", return_value=_client_returning(response)):
        assert post_renew_webhook("https://hooks.example.test", PAYLOAD) is False


def test_webhook_url_from_settings():
    assert renew_webhook_url(Settings(WEBHOOK_RENEW_SUBSCRIPTION="https://x.test/renew")) == "https://x.test/renew"
    assert renew_webhook_url(Settings(WEBHOOK_RENEW_SUBSCRIPTION="")) is None
