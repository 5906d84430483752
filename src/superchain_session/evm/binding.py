"""Resolve one logical contract to the same CREATE2 address on every chain."""

from __future__ import annotations

import asyncio
import logging

from eth_utils import keccak
from web3 import Web3

from ..abi import ContractInterface
from ..exceptions import DeploymentError, TransactionError
from ..types import ContractAddress, ContractDescriptor, DeployerIdentity
from ..utils import ensure_bytes
from .connections import ChainConnections
from .transactions import TransactionExecutor

logger = logging.getLogger(__name__)


def derive_address(descriptor: ContractDescriptor, deployer: DeployerIdentity) -> ContractAddress:
    """Compute the CREATE2 address for ``descriptor`` deployed through ``deployer``.

    The result depends only on the factory, the salt and the init code, so it is
    identical on every chain and needs no network access.
    """

    factory = ensure_bytes(deployer.factory, field="factory")
    digest = keccak(b"\xff" + factory + deployer.salt + keccak(descriptor.init_code))
    return Web3.to_checksum_address(digest[12:])


class ContractBinding:
    """Per-session handle on a counterfactually deployed contract."""

    def __init__(
        self,
        descriptor: ContractDescriptor,
        deployer: DeployerIdentity,
        connections: ChainConnections,
        executor: TransactionExecutor,
    ) -> None:
        self._descriptor = descriptor
        self._deployer = deployer
        self._connections = connections
        self._executor = executor
        self._interface = ContractInterface(descriptor.abi)
        self._address = derive_address(descriptor, deployer)
        self._deployed: set[int] = set()
        self._locks: dict[int, asyncio.Lock] = {}

    @property
    def descriptor(self) -> ContractDescriptor:
        return self._descriptor

    @property
    def deployer(self) -> DeployerIdentity:
        return self._deployer

    @property
    def interface(self) -> ContractInterface:
        return self._interface

    @property
    def address(self) -> ContractAddress:
        return self._address

    def derive_address(self) -> ContractAddress:
        return derive_address(self._descriptor, self._deployer)

    def is_deployed(self, chain_id: int) -> bool:
        """Whether this session has already confirmed code on ``chain_id``."""
        return chain_id in self._deployed

    async def ensure_deployed(self, chain_id: int) -> None:
        """Deploy the contract on ``chain_id`` unless code already exists there."""

        if chain_id in self._deployed:
            return

        self._connections.registry.endpoint_for(chain_id)
        lock = self._locks.setdefault(chain_id, asyncio.Lock())
        async with lock:
            if chain_id in self._deployed:
                return

            if await self._has_code(chain_id):
                logger.debug("Contract already present at %s on chain %s", self._address, chain_id)
                self._deployed.add(chain_id)
                return

            logger.info("Deploying contract to %s on chain %s", self._address, chain_id)
            payload = self._deployer.salt + self._descriptor.init_code
            try:
                receipt = await self._executor.send(
                    chain_id, self._deployer.factory, payload, action="deploy"
                )
            except TransactionError as exc:
                raise DeploymentError(
                    f"Deployment transaction failed on chain {chain_id}",
                    chain_id=chain_id,
                    address=self._address,
                    cause=exc,
                    details={"tx_hash": exc.tx_hash, "error": exc.message},
                ) from exc

            if not await self._has_code(chain_id):
                raise DeploymentError(
                    f"No code at {self._address} on chain {chain_id} after deployment",
                    chain_id=chain_id,
                    address=self._address,
                    details={"tx_hash": receipt.transaction_hash},
                )

            self._deployed.add(chain_id)
            logger.info(
                "Contract deployed at %s on chain %s (tx=%s block=%s)",
                self._address,
                chain_id,
                receipt.transaction_hash,
                receipt.block_number,
            )

    async def _has_code(self, chain_id: int) -> bool:
        web3 = self._connections.web3_for(chain_id)
        try:
            code = await web3.eth.get_code(self._address)
        except Exception as exc:
            raise DeploymentError(
                f"Unable to read code at {self._address} on chain {chain_id}",
                chain_id=chain_id,
                address=self._address,
                cause=exc,
                details={"error": str(exc)},
            ) from exc
        return len(bytes(code)) > 0
