"""REST boundary used to rediscover the gateway endpoint.

The client needs exactly one thing from the REST API: a fresh gateway URL
when reconnecting to the last known endpoint keeps failing.
"""

from typing import Protocol

import httpx

from .config import DEFAULT_API_BASE
from .mechanism import ProtocolError, TransportError
from .utils import get_short_error_info


class GatewayLocator(Protocol):
    async def gateway_url(self, token: str) -> str:
        """Return a websocket URL for the gateway."""
        ...


class HttpGatewayLocator:
    """Resolve the gateway with ``GET {api_base}/gateway``.

    Args:
        api_base: REST API root.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base
        self._timeout = timeout
        self._transport = transport

    async def gateway_url(self, token: str) -> str:
        async with httpx.AsyncClient(
            base_url=self.api_base,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get("/gateway", headers={"Authorization": token})
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise TransportError(
                    f"Gateway lookup failed: {get_short_error_info(e)}",
                    source="HttpGatewayLocator",
                    exception=e,
                ) from e

        try:
            url = response.json()["url"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolError(
                "Gateway lookup returned no url", source="HttpGatewayLocator", exception=e
            ) from e
        if not isinstance(url, str) or not url:
            raise ProtocolError("Gateway lookup returned no url", source="HttpGatewayLocator")
        return url
