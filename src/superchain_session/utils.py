"""Utility functions for multi-chain sessions."""

from collections.abc import Mapping, Sequence
from typing import Any

from eth_typing import HexStr
from hexbytes import HexBytes
from web3 import Web3

from .exceptions import ValidationError


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt


def ensure_bytes(value: bytes | bytearray | str, *, field: str = "value") -> bytes:
    """Coerce raw bytes or a 0x-prefixed hex string into bytes."""
    if isinstance(value, bytes | bytearray):
        return bytes(value)

    if isinstance(value, str):
        text = value.strip()
        if not text.startswith(("0x", "0X")):
            text = "0x" + text
        try:
            return Web3.to_bytes(hexstr=HexStr(text))
        except ValueError as exc:
            raise ValidationError(
                "Value is not valid hex", field=field, value=value, details={"error": str(exc)}
            ) from exc

    raise ValidationError(
        f"Unsupported type for {field}: {type(value)!r}", field=field, value=value
    )


def to_hex(value: bytes | bytearray | str | int) -> str:
    """Render bytes, ints and hex strings as a 0x-prefixed hex string."""
    if isinstance(value, int):
        return hex(value)
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return HexBytes(value).to_0x_hex()


def to_bytes32(value: bytes | str | int, *, field: str = "salt") -> bytes:
    """Convert a salt-like value into exactly 32 bytes (left padded)."""
    if isinstance(value, int):
        if value < 0 or value > 2**256 - 1:
            raise ValidationError("Value does not fit in 32 bytes", field=field, value=value)
        return value.to_bytes(32, byteorder="big")

    raw = ensure_bytes(value, field=field)
    if len(raw) > 32:
        raise ValidationError("Value does not fit in 32 bytes", field=field, value=value)
    return raw.rjust(32, b"\x00")


def checksum(address: str, *, field: str = "address") -> str:
    """Return the checksummed form of an address."""
    try:
        return Web3.to_checksum_address(address)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Invalid address", field=field, value=address, details={"error": str(exc)}
        ) from exc
