"""Exception hierarchy for multi-chain contract sessions."""

from typing import Any


class SessionError(Exception):
    """Base exception for all session errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SessionError):
    """Raised when the session is misconfigured (unknown chain, missing endpoint)."""

    pass


class UnknownChainError(ConfigurationError):
    """Raised when a chain id has no configured RPC endpoint."""

    def __init__(self, chain_id: int, details: dict | None = None):
        super().__init__(f"Chain {chain_id} is not configured", details)
        self.chain_id = chain_id


class ValidationError(SessionError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class CallError(SessionError):
    """Raised when a read-only contract call fails on a chain."""

    def __init__(
        self,
        message: str,
        chain_id: int,
        function_name: str,
        cause: BaseException | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.chain_id = chain_id
        self.function_name = function_name
        self.cause = cause


class TransactionError(SessionError):
    """Raised when a transaction cannot be submitted or is not included successfully."""

    def __init__(
        self,
        message: str,
        chain_id: int,
        cause: BaseException | None = None,
        tx_hash: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.chain_id = chain_id
        self.cause = cause
        self.tx_hash = tx_hash


class DeploymentError(SessionError):
    """Raised when the contract cannot be deployed to its derived address."""

    def __init__(
        self,
        message: str,
        chain_id: int,
        address: str | None = None,
        cause: BaseException | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.chain_id = chain_id
        self.address = address
        self.cause = cause
