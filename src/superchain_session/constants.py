"""Constants shared by the multi-chain session."""

from collections.abc import Mapping
from types import MappingProxyType

# Deterministic deployment proxy, present at the same address on every
# OP Stack chain (and on anvil/supersim as a preinstall).
# https://github.com/Arachnid/deterministic-deployment-proxy
CREATE2_DEPLOYER = "0x4e59b44847b379578588920ca78fbf26c0b4956c"

ZERO_SALT = bytes(32)

# Anvil/supersim account #0. Development only.
DEFAULT_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

SUPERSIM = "supersim"
DEVNET = "devnet"

NETWORK_PRESETS: Mapping[str, Mapping[int, str]] = MappingProxyType(
    {
        SUPERSIM: MappingProxyType(
            {
                901: "http://localhost:9545",
                902: "http://localhost:9546",
            }
        ),
        DEVNET: MappingProxyType(
            {
                420120000: "https://interop-alpha-0.optimism.io",
                420120001: "https://interop-alpha-1.optimism.io",
            }
        ),
    }
)


def get_preset(name: str) -> Mapping[int, str]:
    """Get the chain id to RPC URL mapping for a named network preset.

    Args:
        name: Preset name (e.g., "supersim", "devnet")

    Returns:
        Mapping of chain id to RPC URL

    Raises:
        KeyError: If the preset is not defined
    """
    key = name.strip().lower()
    if key not in NETWORK_PRESETS:
        raise KeyError(f"Unknown network preset: {name}")
    return NETWORK_PRESETS[key]
