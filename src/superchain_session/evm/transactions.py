"""Transaction dispatch: build, sign, submit and confirm on a single chain."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from hexbytes import HexBytes
from web3.exceptions import TimeExhausted

from ..exceptions import TransactionError
from ..types import TransactionReceipt
from ..utils import checksum, to_hex
from .connections import ChainConnections
from .signer import Signer

logger = logging.getLogger(__name__)


class TransactionExecutor:
    """Submit state-changing transactions with per-chain nonce serialization.

    Every submission on a chain holds that chain's lock while the nonce is
    assigned and the raw transaction is broadcast, so concurrent sends from the
    same signer never collide. Receipts are awaited outside the lock. Chains do
    not share locks.
    """

    def __init__(
        self,
        connections: ChainConnections,
        signer: Signer,
        *,
        receipt_timeout: float,
        gas_multiplier: float,
    ) -> None:
        self._connections = connections
        self._signer = signer
        self._receipt_timeout = receipt_timeout
        self._gas_multiplier = gas_multiplier
        self._locks: dict[int, asyncio.Lock] = {}
        self._next_nonce: dict[int, int] = {}

    @property
    def signer(self) -> Signer:
        return self._signer

    def _lock_for(self, chain_id: int) -> asyncio.Lock:
        lock = self._locks.get(chain_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chain_id] = lock
        return lock

    async def send(
        self,
        chain_id: int,
        to: str,
        data: bytes,
        *,
        action: str,
        value: int = 0,
    ) -> TransactionReceipt:
        """Submit a transaction and wait for its receipt on ``chain_id``."""

        web3 = self._connections.web3_for(chain_id)

        async with self._lock_for(chain_id):
            tx_hash = await self._submit(chain_id, web3, to, data, value=value, action=action)

        tx_hex = to_hex(tx_hash)
        logger.info("Transaction sent for action=%s chain=%s hash=%s", action, chain_id, tx_hex)

        try:
            raw_receipt = await web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except TimeExhausted as exc:
            raise TransactionError(
                f"Timed out waiting for receipt of {action} on chain {chain_id}",
                chain_id=chain_id,
                cause=exc,
                tx_hash=tx_hex,
                details={"timeout": self._receipt_timeout},
            ) from exc
        except Exception as exc:
            raise TransactionError(
                f"Failed to fetch receipt for {action} on chain {chain_id}",
                chain_id=chain_id,
                cause=exc,
                tx_hash=tx_hex,
                details={"error": str(exc)},
            ) from exc

        receipt = TransactionReceipt.from_web3(chain_id, raw_receipt)
        if not receipt.succeeded:
            logger.error(
                "Transaction reverted for action=%s chain=%s hash=%s block=%s",
                action,
                chain_id,
                tx_hex,
                receipt.block_number,
            )
            raise TransactionError(
                f"Transaction for {action} reverted on chain {chain_id}",
                chain_id=chain_id,
                tx_hash=tx_hex,
                details={"receipt": receipt.raw},
            )

        logger.info(
            "Transaction confirmed for action=%s chain=%s hash=%s block=%s",
            action,
            chain_id,
            tx_hex,
            receipt.block_number,
        )
        return receipt

    async def _submit(
        self,
        chain_id: int,
        web3: Any,
        to: str,
        data: bytes,
        *,
        value: int,
        action: str,
    ) -> HexBytes:
        sender = self._signer.address
        destination = checksum(to, field="to")

        try:
            nonce = self._next_nonce.get(chain_id)
            if nonce is None:
                nonce = int(await web3.eth.get_transaction_count(sender, "pending"))

            call = {"from": sender, "to": destination, "data": data, "value": value}
            estimated = await web3.eth.estimate_gas(call)
            gas_price = await web3.eth.gas_price

            tx = {
                "chainId": chain_id,
                "nonce": nonce,
                "to": destination,
                "data": data,
                "value": value,
                "gas": int(int(estimated) * self._gas_multiplier),
                "gasPrice": int(gas_price),
            }
            raw = self._signer.sign_transaction(chain_id, tx)
            tx_hash = await web3.eth.send_raw_transaction(raw)
        except Exception as exc:
            # Nonce state is unknown after a failed submit; refetch on next send
            self._next_nonce.pop(chain_id, None)
            logger.error("Failed to submit %s on chain %s: %s", action, chain_id, exc)
            raise TransactionError(
                f"Failed to submit transaction for {action} on chain {chain_id}",
                chain_id=chain_id,
                cause=exc,
                details={"to": destination, "error": str(exc)},
            ) from exc

        self._next_nonce[chain_id] = nonce + 1
        logger.debug("Assigned nonce %s on chain %s for %s", nonce, chain_id, action)
        return HexBytes(tx_hash)
