"""Configuration containers for multi-chain sessions."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

from ..constants import DEFAULT_PRIVATE_KEY, SUPERSIM, get_preset
from ..exceptions import ConfigurationError
from ..types import DeployerIdentity

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_POLL_TIMEOUT = 10.0
DEFAULT_LOG_POLL_INTERVAL = 1.0
DEFAULT_MAX_BLOCK_RANGE = 1000
DEFAULT_GAS_MULTIPLIER = 1.2

ENV_NETWORK = "SUPERCHAIN_ENV"
ENV_RPC_URLS = "SUPERCHAIN_RPC_URLS"
ENV_PRIVATE_KEY = "PRIVATE_KEY"


@dataclass(frozen=True)
class SessionConfig:
    """Aggregated configuration used to construct a multi-chain session."""

    rpc_urls: Mapping[int, str]
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    log_poll_interval: float = DEFAULT_LOG_POLL_INTERVAL
    max_block_range: int = DEFAULT_MAX_BLOCK_RANGE
    gas_multiplier: float = DEFAULT_GAS_MULTIPLIER
    deployer: DeployerIdentity = field(default_factory=DeployerIdentity)

    def __post_init__(self) -> None:
        if not self.rpc_urls:
            raise ConfigurationError("At least one chain RPC endpoint must be configured")
        if self.request_timeout <= 0 or self.receipt_timeout <= 0:
            raise ConfigurationError(
                "Timeouts must be positive",
                details={
                    "request_timeout": self.request_timeout,
                    "receipt_timeout": self.receipt_timeout,
                },
            )
        if self.poll_interval <= 0 or self.log_poll_interval <= 0:
            raise ConfigurationError(
                "Poll intervals must be positive",
                details={
                    "poll_interval": self.poll_interval,
                    "log_poll_interval": self.log_poll_interval,
                },
            )
        if self.max_block_range < 1:
            raise ConfigurationError(
                "max_block_range must be at least 1",
                details={"max_block_range": self.max_block_range},
            )
        if self.gas_multiplier < 1:
            raise ConfigurationError(
                "gas_multiplier must be at least 1",
                details={"gas_multiplier": self.gas_multiplier},
            )

    @classmethod
    def from_preset(cls, name: str = SUPERSIM, **overrides) -> SessionConfig:
        """Build a configuration from a named network preset."""

        try:
            rpc_urls = get_preset(name)
        except KeyError as exc:
            raise ConfigurationError(
                f"Unknown network preset '{name}'", details={"preset": name}
            ) from exc
        return cls(rpc_urls=dict(rpc_urls), **overrides)

    @classmethod
    def from_env(cls, *, dotenv: bool = True, **overrides) -> SessionConfig:
        """Build a configuration from environment variables.

        ``SUPERCHAIN_ENV`` selects a preset (default ``supersim``) and
        ``SUPERCHAIN_RPC_URLS`` (``"901=http://...,902=http://..."``) replaces
        its endpoints.
        """

        if dotenv:
            load_dotenv()

        preset = os.getenv(ENV_NETWORK, SUPERSIM)
        raw_urls = os.getenv(ENV_RPC_URLS)
        if raw_urls:
            return cls(rpc_urls=parse_rpc_urls(raw_urls), **overrides)
        return cls.from_preset(preset, **overrides)

    def with_rpc_urls(self, rpc_urls: Mapping[int, str]) -> SessionConfig:
        return replace(self, rpc_urls=dict(rpc_urls))


def parse_rpc_urls(raw: str) -> dict[int, str]:
    """Parse ``"901=http://a,902=http://b"`` into a chain id mapping."""

    urls: dict[int, str] = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        chain_part, sep, url = chunk.partition("=")
        if not sep or not url.strip():
            raise ConfigurationError(
                "RPC URL entries must look like '<chain_id>=<url>'", details={"entry": chunk}
            )
        try:
            chain_id = int(chain_part.strip())
        except ValueError as exc:
            raise ConfigurationError(
                "Chain id in RPC URL entry must be an integer", details={"entry": chunk}
            ) from exc
        urls[chain_id] = url.strip()

    if not urls:
        raise ConfigurationError("No RPC URLs found", details={"value": raw})
    return urls


def private_key_from_env(*, dotenv: bool = True) -> str:
    """Return ``PRIVATE_KEY`` from the environment, or the development key."""

    if dotenv:
        load_dotenv()
    return os.getenv(ENV_PRIVATE_KEY) or DEFAULT_PRIVATE_KEY
