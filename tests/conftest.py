"""Shared fixtures: an in-memory two-chain network running the Counter contract."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from types import SimpleNamespace
from typing import Any

import pytest
from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak
from eth_utils.abi import event_abi_to_log_topic, function_abi_to_4byte_selector
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TimeExhausted

from superchain_session.constants import CREATE2_DEPLOYER
from superchain_session.evm.config import SessionConfig
from superchain_session.session import MultiChainSession
from superchain_session.types import ContractDescriptor

SIGNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

COUNTER_ABI: list[dict[str, Any]] = [
    {"type": "constructor", "inputs": [], "stateMutability": "nonpayable"},
    {
        "type": "function",
        "name": "number",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256", "internalType": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "increment",
        "inputs": [],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "incrementOnChain",
        "inputs": [{"name": "chainId", "type": "uint256", "internalType": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "setNumber",
        "inputs": [{"name": "newNumber", "type": "uint256", "internalType": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "Incremented",
        "inputs": [
            {"name": "chainId", "type": "uint256", "indexed": True, "internalType": "uint256"},
            {"name": "newValue", "type": "uint256", "indexed": False, "internalType": "uint256"},
        ],
        "anonymous": False,
    },
]

COUNTER_BYTECODE = "0x6080604052348015600e575f5ffd5b5060043610603a575f3560e01c80638381f58a14603e57"

_FUNCTIONS = {entry["name"]: entry for entry in COUNTER_ABI if entry["type"] == "function"}
SELECTORS = {function_abi_to_4byte_selector(entry): name for name, entry in _FUNCTIONS.items()}
INCREMENTED_TOPIC = event_abi_to_log_topic(next(e for e in COUNTER_ABI if e["type"] == "event"))
RUNTIME_CODE = b"\x60\x80\x60\x40"


def create2_address(factory: str, salt: bytes, init_code: bytes) -> str:
    digest = keccak(b"\xff" + HexBytes(factory) + salt + keccak(init_code))
    return Web3.to_checksum_address(digest[12:])


class FakeSigner:
    """Signer stand-in: 'signs' by serialising the transaction to JSON."""

    def __init__(self, address: str = SIGNER_ADDRESS) -> None:
        self._address = address
        self.signed: list[tuple[int, dict[str, Any]]] = []

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, chain_id: int, tx: Mapping[str, Any]) -> bytes:
        payload = dict(tx)
        payload["from"] = self._address
        payload["data"] = HexBytes(payload.get("data") or b"").to_0x_hex()
        self.signed.append((chain_id, payload))
        return json.dumps(payload, sort_keys=True).encode("utf-8")


class FakeEth:
    """Async subset of ``web3.eth`` backed by a :class:`FakeChain`."""

    def __init__(self, chain: FakeChain) -> None:
        self._chain = chain

    @property
    def chain_id(self):
        return self._chain.rpc("eth_chainId", self._chain.reported_chain_id)

    @property
    def gas_price(self):
        return self._chain.rpc("eth_gasPrice", 1_000_000_000)

    async def get_block_number(self) -> int:
        await self._chain.tick("eth_blockNumber")
        if self._chain.block_number_failures:
            self._chain.block_number_failures -= 1
            raise ConnectionError("block number unavailable")
        return self._chain.block_number

    async def get_code(self, address: str) -> HexBytes:
        await self._chain.tick("eth_getCode")
        if self._chain.get_code_failures:
            self._chain.get_code_failures -= 1
            raise ConnectionError("code unavailable")
        return HexBytes(self._chain.code.get(address.lower(), b""))

    async def call(self, tx: Mapping[str, Any]) -> HexBytes:
        await self._chain.tick("eth_call")
        if self._chain.call_failures:
            self._chain.call_failures -= 1
            raise ConnectionError("rpc unavailable")
        return HexBytes(self._chain.execute_call(tx["to"], bytes(tx["data"])))

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        await self._chain.tick("eth_getTransactionCount")
        return self._chain.nonces.get(address.lower(), 0)

    async def estimate_gas(self, tx: Mapping[str, Any]) -> int:
        await self._chain.tick("eth_estimateGas")
        if self._chain.estimate_failures:
            self._chain.estimate_failures -= 1
            raise ValueError("execution reverted")
        return 50_000

    async def send_raw_transaction(self, raw: bytes) -> HexBytes:
        await self._chain.tick("eth_sendRawTransaction")
        return self._chain.apply_raw(raw)

    async def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: float = 120) -> Any:
        await self._chain.tick("eth_getTransactionReceipt")
        if self._chain.withhold_receipts:
            raise TimeExhausted(f"Transaction {HexBytes(tx_hash).to_0x_hex()} is not in the chain")
        return self._chain.receipts[bytes(tx_hash)]

    async def get_logs(self, log_filter: Mapping[str, Any]) -> list[dict[str, Any]]:
        await self._chain.tick("eth_getLogs")
        if self._chain.get_logs_failures:
            self._chain.get_logs_failures -= 1
            raise ConnectionError("logs unavailable")
        return self._chain.query_logs(log_filter)


class FakeProvider:
    def __init__(self) -> None:
        self.disconnected = False

    async def disconnect(self) -> None:
        self.disconnected = True


class FakeChain:
    """Minimal chain that executes the Counter contract and the CREATE2 factory."""

    def __init__(self, chain_id: int, network: FakeNetwork) -> None:
        self.chain_id = chain_id
        self.reported_chain_id = chain_id
        self.network = network
        self.block_number = 0
        self.code: dict[str, bytes] = {CREATE2_DEPLOYER.lower(): RUNTIME_CODE}
        self.numbers: dict[str, int] = {}
        self.nonces: dict[str, int] = {}
        self.logs: list[dict[str, Any]] = []
        self.receipts: dict[bytes, dict[str, Any]] = {}
        self.rpc_calls: list[str] = []
        self.call_failures = 0
        self.get_code_failures = 0
        self.estimate_failures = 0
        self.get_logs_failures = 0
        self.block_number_failures = 0
        self.revert_next = False
        self.withhold_receipts = False
        self.reverse_logs = False
        self.eth = FakeEth(self)
        self.provider = FakeProvider()

    async def tick(self, method: str) -> None:
        self.rpc_calls.append(method)
        # Yield so concurrent callers interleave as they would over a socket
        await asyncio.sleep(0)

    async def rpc(self, method: str, value: Any) -> Any:
        await self.tick(method)
        return value

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def execute_call(self, to: str, data: bytes) -> bytes:
        address = to.lower()
        if address not in self.code or address == CREATE2_DEPLOYER.lower():
            return b""
        if SELECTORS.get(data[:4]) == "number":
            return abi_encode(["uint256"], [self.numbers.get(address, 0)])
        raise ValueError("execution reverted")

    def apply_raw(self, raw: bytes) -> HexBytes:
        tx = json.loads(raw.decode("utf-8"))
        sender = tx["from"].lower()
        if tx["chainId"] != self.chain_id:
            raise ValueError(f"invalid chain id {tx['chainId']}")

        expected = self.nonces.get(sender, 0)
        if tx["nonce"] != expected:
            reason = "too low" if tx["nonce"] < expected else "too high"
            raise ValueError(f"nonce {reason}: expected {expected}, got {tx['nonce']}")
        self.nonces[sender] = expected + 1

        tx_hash = keccak(raw)
        self.block_number += 1
        status = 0 if self.revert_next else self._execute(tx["to"], HexBytes(tx["data"]), tx_hash)
        self.revert_next = False

        self.receipts[tx_hash] = {
            "transactionHash": HexBytes(tx_hash),
            "blockNumber": self.block_number,
            "status": status,
            "gasUsed": 21_000,
            "logs": [log for log in self.logs if log["transactionHash"] == HexBytes(tx_hash)],
        }
        return HexBytes(tx_hash)

    def _execute(self, to: str, data: bytes, tx_hash: bytes) -> int:
        address = to.lower()
        if address == CREATE2_DEPLOYER.lower():
            salt, init_code = data[:32], data[32:]
            created = create2_address(CREATE2_DEPLOYER, salt, init_code).lower()
            if created in self.code:
                return 0
            self.code[created] = RUNTIME_CODE
            self.numbers[created] = 0
            return 1

        if address not in self.code:
            return 1

        name = SELECTORS.get(data[:4])
        if name == "increment":
            self.bump(address, tx_hash)
        elif name == "setNumber":
            (self.numbers[address],) = abi_decode(["uint256"], data[4:])
        elif name == "incrementOnChain":
            (target,) = abi_decode(["uint256"], data[4:])
            self.network.send_message(target, address)
        else:
            return 0
        return 1

    def bump(self, address: str, tx_hash: bytes | None = None) -> None:
        value = self.numbers.get(address, 0) + 1
        self.numbers[address] = value
        self.add_log(
            address,
            [INCREMENTED_TOPIC, abi_encode(["uint256"], [self.chain_id])],
            abi_encode(["uint256"], [value]),
            tx_hash=tx_hash,
        )

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------
    def add_log(
        self,
        address: str,
        topics: list[bytes],
        data: bytes = b"",
        *,
        tx_hash: bytes | None = None,
        new_block: bool = False,
    ) -> dict[str, Any]:
        if new_block:
            self.block_number += 1
        index = sum(1 for log in self.logs if log["blockNumber"] == self.block_number)
        log = {
            "address": Web3.to_checksum_address(address),
            "topics": [HexBytes(topic) for topic in topics],
            "data": HexBytes(data),
            "blockNumber": self.block_number,
            "logIndex": index,
            "transactionHash": HexBytes(tx_hash or keccak(len(self.logs).to_bytes(8, "big"))),
        }
        self.logs.append(log)
        return log

    def mine(self, count: int = 1) -> None:
        self.block_number += count

    def query_logs(self, log_filter: Mapping[str, Any]) -> list[dict[str, Any]]:
        from_block = int(log_filter.get("fromBlock", 0))
        to_block = int(log_filter.get("toBlock", self.block_number))
        address = log_filter.get("address")
        topics = log_filter.get("topics")

        matched = []
        for log in self.logs:
            if not from_block <= log["blockNumber"] <= to_block:
                continue
            if address is not None and log["address"].lower() != str(address).lower():
                continue
            if topics and topics[0] is not None and HexBytes(topics[0]) != log["topics"][0]:
                continue
            matched.append(log)

        if self.reverse_logs:
            matched.reverse()
        return matched


class FakeNetwork:
    """Two or more fake chains plus a manually driven cross-chain relayer."""

    def __init__(self, chain_ids: tuple[int, ...] = (901, 902)) -> None:
        self.chains = {chain_id: FakeChain(chain_id, self) for chain_id in chain_ids}
        self.pending: list[tuple[int, str]] = []
        self.relay_delay: float | None = None
        self.factory_calls: list[tuple[int, str, float]] = []

    def web3_factory(self, chain_id: int, rpc_url: str, request_timeout: float) -> Any:
        self.factory_calls.append((chain_id, rpc_url, request_timeout))
        chain = self.chains[chain_id]
        return SimpleNamespace(eth=chain.eth, provider=chain.provider)

    def send_message(self, target: int, address: str) -> None:
        self.pending.append((target, address))
        if self.relay_delay is not None:
            asyncio.get_running_loop().call_later(self.relay_delay, self.relay)

    def relay(self) -> int:
        delivered = 0
        pending, self.pending = self.pending, []
        for target, address in pending:
            chain = self.chains.get(target)
            if chain is None or address not in chain.code:
                continue
            chain.block_number += 1
            chain.bump(address)
            delivered += 1
        return delivered

    def rpc_calls(self) -> list[str]:
        return [call for chain in self.chains.values() for call in chain.rpc_calls]


RPC_URLS = {901: "http://localhost:9545", 902: "http://localhost:9546"}


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def descriptor() -> ContractDescriptor:
    return ContractDescriptor.create(COUNTER_ABI, COUNTER_BYTECODE)


@pytest.fixture
def config() -> SessionConfig:
    return SessionConfig(
        rpc_urls=dict(RPC_URLS),
        poll_interval=0.05,
        poll_timeout=2.0,
        log_poll_interval=0.01,
        receipt_timeout=5.0,
    )


@pytest.fixture
def session(
    config: SessionConfig,
    signer: FakeSigner,
    descriptor: ContractDescriptor,
    network: FakeNetwork,
) -> MultiChainSession:
    return MultiChainSession(config, signer, descriptor, web3_factory=network.web3_factory)
