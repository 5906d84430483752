"""Multi-chain contract session interface."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

from .types import ContractAddress, EventLog, TransactionReceipt


class MultiChainContractBase(ABC):
    """One logical contract with an independent state on each configured chain."""

    @property
    @abstractmethod
    def address(self) -> ContractAddress:
        pass

    @property
    @abstractmethod
    def chain_ids(self) -> tuple[int, ...]:
        pass

    @abstractmethod
    def endpoint_for(self, chain_id: int) -> str:
        pass

    @abstractmethod
    async def ensure_deployed(self, chain_id: int) -> None:
        pass

    @abstractmethod
    async def call(self, chain_id: int, function_name: str, args: Sequence[Any] = ()) -> Any:
        pass

    @abstractmethod
    async def send_tx(
        self, chain_id: int, function_name: str, args: Sequence[Any] = ()
    ) -> TransactionReceipt:
        pass

    @abstractmethod
    async def wait_until(
        self,
        predicate: Callable[[], Any],
        timeout: float | None = None,
        interval: float | None = None,
    ) -> bool:
        pass

    @abstractmethod
    def watch_events(
        self, chain_id: int, from_block: int, on_log: Callable[[EventLog], Any]
    ) -> Callable[[], None]:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
