"""Multi-chain contract session: the public entry point."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .base import MultiChainContractBase
from .evm.binding import ContractBinding
from .evm.calls import CallExecutor
from .evm.config import SessionConfig
from .evm.connections import ChainConnections, Web3Factory
from .evm.observer import CrossChainObserver, LogCallback, Predicate, Subscription
from .evm.registry import ChainEndpointRegistry
from .evm.signer import LocalAccountSigner, Signer
from .evm.transactions import TransactionExecutor
from .exceptions import CallError, DeploymentError, TransactionError
from .types import ContractAddress, ContractDescriptor, EventLog, TransactionReceipt

logger = logging.getLogger(__name__)


class MultiChainSession(MultiChainContractBase):
    """Resolve, read, write and observe one contract across several chains.

    The contract is deployed implicitly the first time a chain is used: both
    :meth:`call` and :meth:`send_tx` await :meth:`ensure_deployed` before
    touching the contract. Callers may also deploy up front per chain.
    """

    def __init__(
        self,
        config: SessionConfig,
        signer: Signer,
        descriptor: ContractDescriptor,
        *,
        web3_factory: Web3Factory | None = None,
    ) -> None:
        self._config = config
        self._signer = signer
        self._descriptor = descriptor
        self._registry = ChainEndpointRegistry(config.rpc_urls)
        self._connections = ChainConnections(
            self._registry,
            request_timeout=config.request_timeout,
            web3_factory=web3_factory,
        )
        self._executor = TransactionExecutor(
            self._connections,
            signer,
            receipt_timeout=config.receipt_timeout,
            gas_multiplier=config.gas_multiplier,
        )
        self._binding = ContractBinding(
            descriptor, config.deployer, self._connections, self._executor
        )
        self._calls = CallExecutor(self._connections, self._binding)
        self._observer = CrossChainObserver(
            self._connections,
            poll_timeout=config.poll_timeout,
            poll_interval=config.poll_interval,
            log_poll_interval=config.log_poll_interval,
            max_block_range=config.max_block_range,
        )
        self._closed = False
        logger.debug(
            "Session for %s on chains %s (signer %s)",
            self._binding.address,
            self._registry.chain_ids,
            signer.address,
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def descriptor(self) -> ContractDescriptor:
        return self._descriptor

    @property
    def address(self) -> ContractAddress:
        return self._binding.address

    @property
    def chain_ids(self) -> tuple[int, ...]:
        return self._registry.chain_ids

    @property
    def binding(self) -> ContractBinding:
        return self._binding

    @property
    def observer(self) -> CrossChainObserver:
        return self._observer

    def endpoint_for(self, chain_id: int) -> str:
        return self._registry.endpoint_for(chain_id)

    async def verify_chains(self) -> None:
        """Confirm that every configured endpoint serves the chain it is keyed by."""
        await asyncio.gather(*(self._connections.verify_chain(c) for c in self.chain_ids))

    async def ensure_deployed(self, chain_id: int) -> None:
        await self._binding.ensure_deployed(chain_id)

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------
    async def call(self, chain_id: int, function_name: str, args: Sequence[Any] = ()) -> Any:
        try:
            await self._binding.ensure_deployed(chain_id)
        except DeploymentError as exc:
            if exc.cause is None or isinstance(exc.cause, TransactionError):
                raise
            # Only the code lookup failed; no deployment transaction was rejected
            raise CallError(
                f"Call to {function_name} failed on chain {chain_id}",
                chain_id=chain_id,
                function_name=function_name,
                cause=exc.cause,
                details=exc.details,
            ) from exc
        return await self._calls.call(chain_id, function_name, args)

    async def block_number(self, chain_id: int) -> int:
        """Current head of ``chain_id``; no deployment is triggered."""
        return await self._calls.block_number(chain_id)

    async def read_all(
        self, function_name: str, args: Sequence[Any] = ()
    ) -> dict[int, Any]:
        """Read the same function on every configured chain concurrently."""

        results = await asyncio.gather(
            *(self.call(chain_id, function_name, args) for chain_id in self.chain_ids),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip(self.chain_ids, results))

    async def send_tx(
        self, chain_id: int, function_name: str, args: Sequence[Any] = ()
    ) -> TransactionReceipt:
        data = self._binding.interface.encode_call(function_name, args)
        await self._binding.ensure_deployed(chain_id)
        return await self._executor.send(
            chain_id, self._binding.address, data, action=function_name
        )

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    async def wait_until(
        self,
        predicate: Predicate,
        timeout: float | None = None,
        interval: float | None = None,
        *,
        retry_on: tuple[type[BaseException], ...] = (CallError,),
    ) -> bool:
        return await self._observer.wait_until(predicate, timeout, interval, retry_on=retry_on)

    async def wait_for_value(
        self,
        chain_id: int,
        function_name: str,
        expected: Any,
        args: Sequence[Any] = (),
        *,
        timeout: float | None = None,
        interval: float | None = None,
    ) -> bool:
        """Poll ``function_name`` on ``chain_id`` until it returns ``expected``."""

        async def _matches() -> bool:
            return await self.call(chain_id, function_name, args) == expected

        return await self.wait_until(_matches, timeout, interval)

    def watch_events(
        self,
        chain_id: int,
        from_block: int,
        on_log: LogCallback,
        *,
        address: str | None = None,
        topics: Sequence[Any] | None = None,
        poll_interval: float | None = None,
    ) -> Subscription:
        return self._observer.watch_events(
            chain_id,
            from_block,
            on_log,
            address=address,
            topics=topics,
            poll_interval=poll_interval,
        )

    async def wait_for_event(
        self,
        chain_id: int,
        from_block: int,
        match: Callable[[EventLog], bool],
        timeout: float | None = None,
        *,
        address: str | None = None,
        topics: Sequence[Any] | None = None,
        poll_interval: float | None = None,
    ) -> EventLog | None:
        return await self._observer.wait_for_event(
            chain_id,
            from_block,
            match,
            timeout,
            address=address,
            topics=topics,
            poll_interval=poll_interval,
        )

    def decode_event(self, log: EventLog) -> tuple[str, dict[str, Any]] | None:
        """Decode ``log`` with the contract interface; None if it is not one of ours."""

        if log.address is not None and log.address != self.address:
            return None
        return self._binding.interface.decode_event(log.topics, log.data)

    def event_matcher(self, event_name: str) -> Callable[[EventLog], bool]:
        """Predicate selecting this contract's ``event_name`` logs."""

        topic = self._binding.interface.event_topic(event_name)

        def _match(log: EventLog) -> bool:
            return log.topic0 == topic and (log.address is None or log.address == self.address)

        return _match

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def close(self) -> None:
        """Cancel open subscriptions and release RPC connections."""

        if self._closed:
            return
        self._closed = True
        subscriptions = self._observer.subscriptions
        for subscription in subscriptions:
            await subscription.aclose()
        await self._connections.close()
        logger.debug("Session for %s closed", self.address)

    async def __aenter__(self) -> MultiChainSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def get_session(
    config: SessionConfig | Mapping[int, str],
    signer: Signer | str,
    abi: Sequence[Mapping[str, Any]],
    bytecode: bytes | str,
    *,
    constructor_args: Sequence[Any] = (),
    web3_factory: Web3Factory | None = None,
) -> MultiChainSession:
    """Build a session from RPC URLs (or a config), a signer (or private key), ABI and bytecode."""

    if not isinstance(config, SessionConfig):
        config = SessionConfig(rpc_urls=dict(config))
    if isinstance(signer, str):
        signer = LocalAccountSigner(signer)
    descriptor = ContractDescriptor.create(abi, bytecode, constructor_args)
    return MultiChainSession(config, signer, descriptor, web3_factory=web3_factory)
