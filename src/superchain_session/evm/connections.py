"""Connection helpers: one AsyncWeb3 handle per configured chain."""

from __future__ import annotations

import logging
from collections.abc import Callable

from aiohttp import ClientTimeout
from web3 import AsyncHTTPProvider, AsyncWeb3

from ..exceptions import ConfigurationError
from .registry import ChainEndpointRegistry

logger = logging.getLogger(__name__)

Web3Factory = Callable[[int, str, float], AsyncWeb3]


def build_async_web3(chain_id: int, rpc_url: str, request_timeout: float) -> AsyncWeb3:
    """Default factory: an HTTP provider whose requests time out after ``request_timeout``."""

    provider = AsyncHTTPProvider(
        rpc_url, request_kwargs={"timeout": ClientTimeout(total=request_timeout)}
    )
    return AsyncWeb3(provider)


class ChainConnections:
    """Lazily build and cache AsyncWeb3 handles keyed by chain id."""

    def __init__(
        self,
        registry: ChainEndpointRegistry,
        *,
        request_timeout: float,
        web3_factory: Web3Factory | None = None,
    ) -> None:
        self._registry = registry
        self._request_timeout = request_timeout
        self._factory = web3_factory or build_async_web3
        self._web3: dict[int, AsyncWeb3] = {}

    @property
    def registry(self) -> ChainEndpointRegistry:
        return self._registry

    def web3_for(self, chain_id: int) -> AsyncWeb3:
        """Return the handle for ``chain_id``; building it performs no network I/O."""

        web3 = self._web3.get(chain_id)
        if web3 is None:
            rpc_url = self._registry.endpoint_for(chain_id)
            web3 = self._factory(chain_id, rpc_url, self._request_timeout)
            self._web3[chain_id] = web3
            logger.debug("Created RPC handle for chain %s at %s", chain_id, rpc_url)
        return web3

    async def verify_chain(self, chain_id: int) -> None:
        """Check that the endpoint configured for ``chain_id`` really serves that chain."""

        web3 = self.web3_for(chain_id)
        endpoint = self._registry.endpoint_for(chain_id)
        try:
            reported = await web3.eth.chain_id
        except Exception as exc:
            raise ConfigurationError(
                f"Unable to reach RPC for chain {chain_id}",
                details={"endpoint": endpoint, "error": str(exc)},
            ) from exc

        if int(reported) != chain_id:
            raise ConfigurationError(
                f"RPC endpoint for chain {chain_id} reports chain id {reported}",
                details={"endpoint": endpoint, "reported": int(reported)},
            )
        logger.info("Connected to chain %s at %s", chain_id, endpoint)

    async def close(self) -> None:
        handles = list(self._web3.items())
        self._web3.clear()
        for chain_id, web3 in handles:
            disconnect = getattr(web3.provider, "disconnect", None)
            if disconnect is None:
                continue
            await disconnect()
            logger.debug("Closed RPC handle for chain %s", chain_id)
