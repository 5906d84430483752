"""Signer boundary: turns unsigned transaction payloads into raw signed bytes."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol, cast, runtime_checkable

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3.types import ChecksumAddress

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


@runtime_checkable
class Signer(Protocol):
    """Opaque signing capability injected into a session."""

    @property
    def address(self) -> ChecksumAddress: ...

    def sign_transaction(self, chain_id: int, tx: Mapping[str, Any]) -> bytes: ...


class LocalAccountSigner:
    """Sign transactions with a local private key via eth-account."""

    def __init__(self, private_key: str) -> None:
        try:
            account = cast(LocalAccount, Account.from_key(private_key))  # type: ignore[arg-type]
        except Exception as exc:
            raise ValidationError(
                "Failed to derive signer account from provided private key",
                field="private_key",
                details={"error": str(exc)},
            ) from exc
        self._account = account

    @property
    def address(self) -> ChecksumAddress:
        return self._account.address  # type: ignore[return-value]

    def sign_transaction(self, chain_id: int, tx: Mapping[str, Any]) -> bytes:
        payload = {key: value for key, value in tx.items() if key != "from"}
        if payload.get("chainId") != chain_id:
            raise ValidationError(
                "Transaction chainId does not match the target chain",
                field="chainId",
                value=payload.get("chainId"),
                details={"chain_id": chain_id},
            )
        signed = self._account.sign_transaction(payload)
        logger.debug("Signed transaction nonce=%s on chain %s", payload.get("nonce"), chain_id)
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address})"
