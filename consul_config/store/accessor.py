"""
Store Accessor

Issues one request against the Consul KV store for a key, optionally as a
blocking query bounded by a known index, and classifies the response.
"""

import asyncio
import contextlib
from urllib.parse import quote

import httpx

from consul_config.common.config import ConsulClientConfiguration, ConsulConfigSource
from consul_config.common.exceptions import (
    ConfigurationMissingError,
    OperationCancelledError,
    StoreCommunicationError,
    TransportError,
)
from consul_config.common.logging_setup import get_service_logger

from .client import ConsulClientFactory
from .models import StoreResponse, StoreStatus

logger = get_service_logger("store")

INDEX_HEADER = "X-Consul-Index"


def kv_path(key: str) -> str:
    """KV endpoint for a key, e.g. "/app/my config" -> "/v1/kv/app/my%20config" """
    return f"/v1/kv/{quote(key.lstrip('/'), safe='/')}"


class StoreAccessor:
    """
    Stateless accessor for a single Consul key.

    Does not retry: each call to fetch() is exactly one HTTP request.
    """

    def __init__(
        self,
        source: ConsulConfigSource,
        client_factory: ConsulClientFactory | None = None,
    ):
        self.source = source
        self.client_factory = client_factory or ConsulClientFactory(source)

    async def fetch(
        self,
        key: str,
        optional: bool,
        blocking_index: int | None = None,
    ) -> StoreResponse:
        """
        Fetch the raw value of a key.

        Args:
            key: Consul key path
            optional: Return NOT_FOUND instead of failing when absent
            blocking_index: When given, long-poll until the key's index
                moves past it or the wait time elapses

        Raises:
            ConfigurationMissingError: key absent and not optional
            StoreCommunicationError: any other non-success status
            TransportError: network or timeout failure
            OperationCancelledError: source cancellation was set
        """
        if self.source.cancellation.is_set():
            raise OperationCancelledError(key)

        client_config = self.source.build_client_configuration()
        params = self._query_params(client_config, blocking_index)

        async with self.client_factory.create(
            client_config, blocking=blocking_index is not None
        ) as client:
            response = await self._get_cancellable(client, key, params)

        index = self._parse_index(response)

        if response.status_code == 200:
            return StoreResponse(
                key=key,
                status=StoreStatus.FOUND,
                index=index,
                value=response.content,
            )

        if response.status_code == 404:
            if optional:
                return StoreResponse(key=key, status=StoreStatus.NOT_FOUND, index=index)
            raise ConfigurationMissingError(key)

        raise StoreCommunicationError(response.status_code, key)

    def _query_params(
        self,
        client_config: ConsulClientConfiguration,
        blocking_index: int | None,
    ) -> dict[str, str]:
        params = {"raw": ""}
        if client_config.datacenter:
            params["dc"] = client_config.datacenter
        if blocking_index is not None:
            params["index"] = str(blocking_index)
            params["wait"] = f"{int(client_config.wait_time_s)}s"
        return params

    async def _get_cancellable(
        self,
        client: httpx.AsyncClient,
        key: str,
        params: dict[str, str],
    ) -> httpx.Response:
        """Run the GET, aborting it if the cancellation event fires first"""
        request = asyncio.ensure_future(client.get(kv_path(key), params=params))
        cancelled = asyncio.ensure_future(self.source.cancellation.wait())

        try:
            done, _ = await asyncio.wait(
                {request, cancelled},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()
            if not request.done():
                request.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await request

        if request not in done:
            logger.debug(f"Request for {key} aborted by cancellation")
            raise OperationCancelledError(key)

        try:
            return request.result()
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__, key) from e

    def _parse_index(self, response: httpx.Response) -> int:
        raw = response.headers.get(INDEX_HEADER)
        if raw is None:
            return 0
        try:
            return max(int(raw), 0)
        except ValueError:
            logger.warning(f"Ignoring malformed {INDEX_HEADER} header: {raw!r}")
            return 0
