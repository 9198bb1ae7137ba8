"""
Consul HTTP Client Factory

Builds the httpx client used for each KV request, applying the source's
override hooks (address, token, TLS, headers, timeouts).
"""

from typing import Any

import httpx

from consul_config.common.config import ConsulClientConfiguration, ConsulConfigSource


class ConsulClientFactory:
    """
    Creates short-lived httpx clients for the Consul HTTP API.

    A fresh client per request keeps the accessor stateless between calls.
    An explicit transport can be injected (used by tests to fake Consul).
    """

    def __init__(
        self,
        source: ConsulConfigSource,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.source = source
        self.transport = transport

    def create(
        self,
        client_config: ConsulClientConfiguration,
        blocking: bool = False,
    ) -> httpx.AsyncClient:
        """
        Create a client for one request.

        Args:
            client_config: Connection settings with overrides applied
            blocking: Widen the read timeout to cover a long-poll
        """
        headers = {}
        if client_config.token:
            headers["X-Consul-Token"] = client_config.token

        timeout = client_config.request_timeout_s
        if blocking:
            # Consul adds up to wait/16 of jitter to a blocking query
            timeout += client_config.wait_time_s + client_config.wait_time_s / 16

        kwargs: dict[str, Any] = {
            "base_url": client_config.address,
            "headers": headers,
            "timeout": httpx.Timeout(timeout, connect=client_config.request_timeout_s),
        }
        if self.transport is not None:
            kwargs["transport"] = self.transport

        if self.source.http_client_options:
            self.source.http_client_options(kwargs)

        return httpx.AsyncClient(**kwargs)
