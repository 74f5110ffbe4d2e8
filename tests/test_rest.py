"""Tests for gateway rediscovery over REST, backed by httpx.MockTransport."""

import asyncio

import httpx
import pytest

from rxgateway.mechanism import ProtocolError, TransportError
from rxgateway.rest import HttpGatewayLocator


def locator_for(handler) -> HttpGatewayLocator:
    return HttpGatewayLocator(
        api_base="https://api.example/v6", transport=httpx.MockTransport(handler)
    )


def test_returns_gateway_url():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"url": "wss://gateway.example"})

    url = asyncio.run(locator_for(handler).gateway_url("Bot secret"))

    assert url == "wss://gateway.example"
    assert str(seen[0].url) == "https://api.example/v6/gateway"
    assert seen[0].headers["Authorization"] == "Bot secret"


def test_http_error_status():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(TransportError, match="Gateway lookup failed"):
        asyncio.run(locator_for(handler).gateway_url("tok"))


def test_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError):
        asyncio.run(locator_for(handler).gateway_url("tok"))


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"shards": 1}),
        httpx.Response(200, json={"url": ""}),
        httpx.Response(200, json=["wss://x"]),
        httpx.Response(200, text="<html>"),
    ],
)
def test_response_without_url(response):
    with pytest.raises(ProtocolError, match="no url"):
        asyncio.run(locator_for(lambda request: response).gateway_url("tok"))
