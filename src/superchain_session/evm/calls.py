"""Read-only contract calls."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..exceptions import CallError
from .binding import ContractBinding
from .connections import ChainConnections

logger = logging.getLogger(__name__)


class CallExecutor:
    """Execute ``eth_call`` against the bound contract and decode the result."""

    def __init__(self, connections: ChainConnections, binding: ContractBinding) -> None:
        self._connections = connections
        self._binding = binding

    async def call(self, chain_id: int, function_name: str, args: Sequence[Any] = ()) -> Any:
        interface = self._binding.interface
        call_data = interface.encode_call(function_name, args)
        web3 = self._connections.web3_for(chain_id)
        destination = self._binding.address

        try:
            result = await web3.eth.call({"to": destination, "data": call_data})
        except Exception as exc:
            raise CallError(
                f"Call to {function_name} failed on chain {chain_id}",
                chain_id=chain_id,
                function_name=function_name,
                cause=exc,
                details={"to": destination, "args": list(args), "error": str(exc)},
            ) from exc

        try:
            decoded = interface.decode_output(function_name, bytes(result), len(args))
        except Exception as exc:
            raise CallError(
                f"Failed to decode {function_name} result on chain {chain_id}",
                chain_id=chain_id,
                function_name=function_name,
                cause=exc,
                details={"to": destination, "raw": bytes(result).hex(), "error": str(exc)},
            ) from exc

        logger.debug("call %s(%s) on chain %s -> %r", function_name, list(args), chain_id, decoded)
        return decoded

    async def block_number(self, chain_id: int) -> int:
        web3 = self._connections.web3_for(chain_id)
        try:
            return int(await web3.eth.get_block_number())
        except Exception as exc:
            raise CallError(
                f"Failed to read block number on chain {chain_id}",
                chain_id=chain_id,
                function_name="eth_blockNumber",
                cause=exc,
                details={"error": str(exc)},
            ) from exc
