"""Chain id to RPC endpoint lookup."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from ..exceptions import ConfigurationError, UnknownChainError


class ChainEndpointRegistry:
    """Immutable mapping of chain ids to RPC endpoints."""

    def __init__(self, rpc_urls: Mapping[int, str]) -> None:
        endpoints: dict[int, str] = {}
        for chain_id, url in rpc_urls.items():
            if isinstance(chain_id, bool) or not isinstance(chain_id, int):
                raise ConfigurationError(
                    "Chain ids must be integers", details={"chain_id": chain_id}
                )
            if not isinstance(url, str) or not url.strip():
                raise ConfigurationError(
                    f"Missing RPC endpoint for chain {chain_id}",
                    details={"chain_id": chain_id, "url": url},
                )
            endpoints[chain_id] = url.strip()
        self._endpoints = endpoints

    def endpoint_for(self, chain_id: int) -> str:
        try:
            return self._endpoints[chain_id]
        except KeyError:
            raise UnknownChainError(
                chain_id, details={"configured": sorted(self._endpoints)}
            ) from None

    @property
    def chain_ids(self) -> tuple[int, ...]:
        return tuple(self._endpoints)

    def __contains__(self, chain_id: object) -> bool:
        return chain_id in self._endpoints

    def __iter__(self) -> Iterator[int]:
        return iter(self._endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __repr__(self) -> str:
        return f"ChainEndpointRegistry({self._endpoints!r})"
