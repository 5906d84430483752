"""Superchain session - one logical contract across many EVM chains.

This library resolves a contract to the same deterministic address on every
configured chain, issues reads and writes against a chosen chain, and observes
eventual cross-chain effects through predicate polling and log subscriptions.
"""

from .abi import ContractInterface
from .base import MultiChainContractBase
from .evm.binding import ContractBinding, derive_address
from .evm.config import SessionConfig, private_key_from_env
from .evm.observer import CrossChainObserver, Subscription, wait_until
from .evm.registry import ChainEndpointRegistry
from .evm.signer import LocalAccountSigner, Signer
from .exceptions import (
    CallError,
    ConfigurationError,
    DeploymentError,
    SessionError,
    TransactionError,
    UnknownChainError,
    ValidationError,
)
from .session import MultiChainSession, get_session
from .types import (
    ChainId,
    ContractAddress,
    ContractDescriptor,
    DeployerIdentity,
    EventLog,
    TransactionReceipt,
)

__version__ = "0.1.0"

__all__ = [
    # Session
    "MultiChainContractBase",
    "MultiChainSession",
    "get_session",
    # Components
    "ChainEndpointRegistry",
    "ContractBinding",
    "ContractInterface",
    "CrossChainObserver",
    "Subscription",
    "LocalAccountSigner",
    "Signer",
    "SessionConfig",
    # Types
    "ChainId",
    "ContractAddress",
    "ContractDescriptor",
    "DeployerIdentity",
    "EventLog",
    "TransactionReceipt",
    # Exceptions
    "SessionError",
    "ConfigurationError",
    "UnknownChainError",
    "ValidationError",
    "CallError",
    "TransactionError",
    "DeploymentError",
    # Functions
    "derive_address",
    "private_key_from_env",
    "wait_until",
]
