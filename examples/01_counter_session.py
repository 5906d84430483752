"""Example: Read, increment and cross-chain increment a Counter on two chains."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from superchain_session import (
    ContractDescriptor,
    LocalAccountSigner,
    MultiChainSession,
    SessionConfig,
    private_key_from_env,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

ARTIFACT_PATH = os.getenv("COUNTER_ARTIFACT", "out/Counter.sol/Counter.json")
CROSS_CHAIN_TIMEOUT = float(os.getenv("CROSS_CHAIN_TIMEOUT", "30"))


async def main() -> None:
    """Deploy Counter everywhere, then increment it locally and across chains."""

    config = SessionConfig.from_env()
    if len(config.rpc_urls) < 2:
        raise ValueError("At least two chains must be configured for this example")
    source, target = sorted(config.rpc_urls)[:2]

    descriptor = ContractDescriptor.from_artifact_file(ARTIFACT_PATH)
    signer = LocalAccountSigner(private_key_from_env())

    async with MultiChainSession(config, signer, descriptor) as session:
        await session.verify_chains()
        print(f"Counter address on every chain: {session.address}")

        values = await session.read_all("number")
        for chain_id, value in values.items():
            print(f"Chain {chain_id}: number = {value}")

        receipt = await session.send_tx(source, "increment")
        print(f"Local increment on {source} in block {receipt.block_number}")
        print(f"Chain {source}: number = {await session.call(source, 'number')}")

        expected = values[target] + 1
        receipt = await session.send_tx(source, "incrementOnChain", [target])
        print(f"Sent cross-chain increment {source} -> {target}: {receipt.transaction_hash}")

        delivered = await session.wait_for_value(
            target, "number", expected, timeout=CROSS_CHAIN_TIMEOUT
        )
        if not delivered:
            print(f"Message not observed on {target} within {CROSS_CHAIN_TIMEOUT:.0f}s")
            return
        print(f"Chain {target}: number = {expected}")


if __name__ == "__main__":
    asyncio.run(main())
