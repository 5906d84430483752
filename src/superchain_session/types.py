"""Type definitions and data models for multi-chain sessions."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hexbytes import HexBytes

from .abi import AbiEntry, ContractInterface
from .constants import CREATE2_DEPLOYER, ZERO_SALT
from .exceptions import ValidationError
from .utils import checksum, ensure_bytes, serialise_receipt, to_bytes32, to_hex

ChainId = int
ContractAddress = str  # Checksummed 20-byte address


@dataclass(frozen=True)
class ContractDescriptor:
    """Immutable description of a contract: its interface and creation bytecode."""

    abi: tuple[AbiEntry, ...]
    bytecode: bytes
    constructor_args: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if not self.bytecode:
            raise ValidationError("Contract bytecode must not be empty", field="bytecode")

    @classmethod
    def create(
        cls,
        abi: Sequence[AbiEntry],
        bytecode: bytes | str,
        constructor_args: Sequence[Any] = (),
    ) -> ContractDescriptor:
        return cls(
            abi=tuple(abi),
            bytecode=ensure_bytes(bytecode, field="bytecode"),
            constructor_args=tuple(constructor_args),
        )

    @classmethod
    def from_artifact(
        cls, artifact: Mapping[str, Any], constructor_args: Sequence[Any] = ()
    ) -> ContractDescriptor:
        """Construct a descriptor from a Foundry or solc JSON artifact."""

        abi = artifact.get("abi")
        if not isinstance(abi, list):
            raise ValidationError("Artifact is missing an 'abi' list", field="abi", value=abi)

        raw_bytecode = artifact.get("bytecode")
        if isinstance(raw_bytecode, Mapping):
            # Foundry nests the creation code under bytecode.object
            raw_bytecode = raw_bytecode.get("object")
        if not isinstance(raw_bytecode, str) or not raw_bytecode:
            raise ValidationError(
                "Artifact is missing creation bytecode", field="bytecode", value=raw_bytecode
            )

        return cls.create(abi, raw_bytecode, constructor_args)

    @classmethod
    def from_artifact_file(
        cls, path: str | Path, constructor_args: Sequence[Any] = ()
    ) -> ContractDescriptor:
        with Path(path).open("r", encoding="utf-8") as artifact_file:
            artifact = json.load(artifact_file)
        if not isinstance(artifact, Mapping):
            raise ValidationError("Artifact must be a JSON object", field="path", value=str(path))
        return cls.from_artifact(artifact, constructor_args)

    @property
    def interface(self) -> ContractInterface:
        return ContractInterface(self.abi)

    @property
    def init_code(self) -> bytes:
        """Creation bytecode followed by the ABI-encoded constructor arguments."""
        return self.bytecode + self.interface.encode_constructor_args(self.constructor_args)


@dataclass(frozen=True)
class DeployerIdentity:
    """CREATE2 factory and salt that together pin the contract address."""

    factory: str = CREATE2_DEPLOYER
    salt: bytes = ZERO_SALT

    @classmethod
    def create(
        cls, factory: str = CREATE2_DEPLOYER, salt: bytes | str | int = ZERO_SALT
    ) -> DeployerIdentity:
        return cls(factory=checksum(factory, field="factory"), salt=to_bytes32(salt))

    def __post_init__(self) -> None:
        if len(self.salt) != 32:
            raise ValidationError("Salt must be exactly 32 bytes", field="salt", value=self.salt)


@dataclass(frozen=True)
class TransactionReceipt:
    """Confirmation that a transaction was included on its submitting chain."""

    transaction_hash: str
    block_number: int
    chain_id: ChainId
    status: int = 1
    gas_used: int | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False)

    @classmethod
    def from_web3(cls, chain_id: ChainId, receipt: Mapping[str, Any]) -> TransactionReceipt:
        tx_hash = receipt.get("transactionHash")
        return cls(
            transaction_hash=to_hex(tx_hash) if tx_hash is not None else "",
            block_number=int(receipt.get("blockNumber") or 0),
            chain_id=chain_id,
            status=int(receipt.get("status", 1)),
            gas_used=receipt.get("gasUsed"),
            raw=serialise_receipt(receipt),
        )

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class EventLog:
    """A single log entry emitted on a chain."""

    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    chain_id: ChainId
    address: str | None = None
    log_index: int = 0
    transaction_hash: str | None = None

    @classmethod
    def from_web3(cls, chain_id: ChainId, log: Mapping[str, Any]) -> EventLog:
        tx_hash = log.get("transactionHash")
        address = log.get("address")
        return cls(
            topics=tuple(bytes(HexBytes(topic)) for topic in log.get("topics") or ()),
            data=bytes(HexBytes(log.get("data") or b"")),
            block_number=int(log["blockNumber"]),
            chain_id=chain_id,
            address=checksum(address) if address else None,
            log_index=int(log.get("logIndex") or 0),
            transaction_hash=to_hex(tx_hash) if tx_hash is not None else None,
        )

    @property
    def topic0(self) -> bytes | None:
        return self.topics[0] if self.topics else None

    @property
    def position(self) -> tuple[int, int]:
        """Ordering key: block number, then emission order within the block."""
        return self.block_number, self.log_index
