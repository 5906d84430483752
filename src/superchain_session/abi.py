"""Contract interface built on an offline web3 contract object.

The session never interprets a contract's business meaning; it only needs to
encode calls, decode return data and decode event logs. The web3 contract is
created without an address or provider so that calldata and topics can be
computed before any chain is contacted.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils.abi import abi_to_signature, collapse_if_tuple, event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import MismatchedABI

from .exceptions import ValidationError

AbiEntry = Mapping[str, Any]


def _normalise(entry: Any) -> dict[str, Any]:
    if not isinstance(entry, Mapping):
        raise ValidationError("ABI entries must be mappings", field="abi", value=entry)
    normalised = dict(entry)
    normalised.setdefault("type", "function")
    if normalised["type"] == "event":
        normalised.setdefault("anonymous", False)
    return normalised


class ContractInterface:
    """Encode and decode calls and logs for one contract ABI."""

    def __init__(self, abi: Sequence[AbiEntry]) -> None:
        self._abi = tuple(abi)
        entries = [_normalise(entry) for entry in self._abi]
        self._contract = Web3().eth.contract(abi=entries)

        self._functions: dict[str, list[dict[str, Any]]] = {}
        self._events_by_topic: dict[bytes, dict[str, Any]] = {}
        self._constructor: dict[str, Any] | None = None
        for entry in entries:
            kind = entry["type"]
            if kind == "function":
                self._functions.setdefault(str(entry["name"]), []).append(entry)
            elif kind == "event" and not entry["anonymous"]:
                self._events_by_topic[event_abi_to_log_topic(entry)] = entry
            elif kind == "constructor":
                self._constructor = entry

    @property
    def abi(self) -> tuple[AbiEntry, ...]:
        return self._abi

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------
    def get_function(self, name: str, arg_count: int | None = None) -> dict[str, Any]:
        """Resolve a function entry by name, disambiguating overloads by arity."""

        candidates = self._functions.get(name)
        if not candidates:
            raise ValidationError(
                f"Function '{name}' is not in the contract ABI", field="name", value=name
            )

        if arg_count is not None:
            candidates = [c for c in candidates if len(c.get("inputs") or []) == arg_count]
            if not candidates:
                raise ValidationError(
                    f"Function '{name}' does not accept {arg_count} argument(s)",
                    field="args",
                    value=arg_count,
                )

        if len(candidates) > 1:
            raise ValidationError(
                f"Function '{name}' is overloaded; argument count is ambiguous",
                field="name",
                value=name,
                details={"signatures": [abi_to_signature(c) for c in candidates]},
            )
        return candidates[0]

    def encode_call(self, name: str, args: Sequence[Any] = ()) -> bytes:
        entry = self.get_function(name, len(args))
        try:
            encoded = self._contract.encode_abi(name, args=list(args))
        except Exception as exc:
            raise ValidationError(
                f"Arguments do not match the ABI of '{name}'",
                field="args",
                value=list(args),
                details={"signature": abi_to_signature(entry), "error": str(exc)},
            ) from exc
        return bytes(HexBytes(encoded))

    def decode_output(self, name: str, data: bytes, arg_count: int | None = None) -> Any:
        """Decode return data: ``None`` for no outputs, a scalar for one, else a tuple."""

        entry = self.get_function(name, arg_count)
        output_types = [collapse_if_tuple(param) for param in entry.get("outputs") or []]
        if not output_types:
            return None

        decoded = abi_decode(output_types, bytes(data))
        if len(decoded) == 1:
            return decoded[0]
        return tuple(decoded)

    # ------------------------------------------------------------------
    # Constructor and events
    # ------------------------------------------------------------------
    def encode_constructor_args(self, args: Sequence[Any]) -> bytes:
        inputs = (self._constructor or {}).get("inputs") or []
        if len(inputs) != len(args):
            raise ValidationError(
                "Constructor argument count does not match the ABI",
                field="constructor_args",
                value=list(args),
                details={"expected": len(inputs)},
            )
        if not inputs:
            return b""
        return abi_encode([collapse_if_tuple(param) for param in inputs], list(args))

    def event_topic(self, name: str) -> bytes:
        for topic, entry in self._events_by_topic.items():
            if entry["name"] == name:
                return topic
        raise ValidationError(
            f"Event '{name}' is not in the contract ABI", field="name", value=name
        )

    def decode_event(
        self, topics: Sequence[bytes], data: bytes
    ) -> tuple[str, dict[str, Any]] | None:
        """Decode a non-anonymous event log; ``None`` when topic0 is unknown."""

        if not topics:
            return None
        entry = self._events_by_topic.get(bytes(topics[0]))
        if entry is None:
            return None

        name = str(entry["name"])
        raw_log = {
            "topics": [HexBytes(topic) for topic in topics],
            "data": HexBytes(data),
            "address": None,
            "blockHash": None,
            "blockNumber": None,
            "logIndex": None,
            "transactionIndex": None,
            "transactionHash": None,
        }
        try:
            event = getattr(self._contract.events, name)().process_log(raw_log)
        except (MismatchedABI, DecodingError) as exc:
            raise ValidationError(
                f"Log does not match the ABI of event '{name}'",
                field="log",
                details={"signature": abi_to_signature(entry), "error": str(exc)},
            ) from exc
        return name, dict(event["args"])
