"""Full-reconnect policy: retry the known endpoint, then rediscover it."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .config import ReconnectPolicy
from .mechanism import ClientClosedError, GatewayError
from .rest import GatewayLocator
from .telemetry import OTelLogger
from .utils import get_short_error_info

T = TypeVar("T")


class Reconnector:
    """Runs fresh handshakes until one succeeds or every option is used.

    The sequence is: sleep ``policy.delay``; try ``policy.same_endpoint_attempts``
    handshakes against the current endpoint, sleeping ``policy.delay`` after
    each failure; then ask the locator for a new endpoint and try once more.
    The error of the final attempt propagates.

    ``is_closed`` is checked before every attempt and before the locator is
    asked; once it returns True the sequence stops with
    :class:`ClientClosedError`, which is never retried.
    """

    def __init__(self, policy: ReconnectPolicy, locator: GatewayLocator, logger: OTelLogger):
        self.policy = policy
        self._locator = locator
        self._logger = logger

    async def reconnect(
        self,
        endpoint: str,
        token: str,
        handshake: Callable[[str], Awaitable[T]],
        is_closed: Callable[[], bool] | None = None,
    ) -> tuple[T, str]:
        """Return the handshake result and the endpoint it succeeded on."""

        def ensure_open() -> None:
            if is_closed is not None and is_closed():
                raise ClientClosedError(
                    "Client was shut down during reconnect", source="Reconnector"
                )

        await asyncio.sleep(self.policy.delay)

        attempts = self.policy.same_endpoint_attempts
        for attempt in range(1, attempts + 1):
            ensure_open()
            self._logger.info(f"Reconnecting to {endpoint} (attempt {attempt}/{attempts})")
            try:
                return await handshake(endpoint), endpoint
            except ClientClosedError:
                raise
            except GatewayError as e:
                self._logger.warning(
                    f"Reconnect attempt {attempt} failed: {get_short_error_info(e)}"
                )
            await asyncio.sleep(self.policy.delay)

        ensure_open()
        self._logger.info("Known endpoint unavailable, asking the API for a new gateway")
        rediscovered = await self._locator.gateway_url(token)
        ensure_open()
        self._logger.info(f"Reconnecting to rediscovered endpoint {rediscovered}")
        return await handshake(rediscovered), rediscovered
