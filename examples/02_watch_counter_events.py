"""Example: Watch the remote chain for the Incremented event of a cross-chain call."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from superchain_session import (
    ContractDescriptor,
    EventLog,
    SessionConfig,
    get_session,
    private_key_from_env,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

ARTIFACT_PATH = os.getenv("COUNTER_ARTIFACT", "out/Counter.sol/Counter.json")
EVENT_TIMEOUT = float(os.getenv("EVENT_TIMEOUT", "60"))


async def main() -> None:
    """Send incrementOnChain and print every Incremented log seen on the target."""

    config = SessionConfig.from_env()
    source, target = sorted(config.rpc_urls)[:2]
    descriptor = ContractDescriptor.from_artifact_file(ARTIFACT_PATH)

    session = get_session(
        config, private_key_from_env(), descriptor.abi, descriptor.bytecode
    )
    try:
        await session.ensure_deployed(target)
        start_block = await session.block_number(target) + 1

        seen = asyncio.Event()

        def on_log(log: EventLog) -> None:
            decoded = session.decode_event(log)
            if decoded is None:
                return
            name, values = decoded
            print(f"[chain {log.chain_id} block {log.block_number}] {name} {values}")
            if name == "Incremented":
                seen.set()

        async with session.watch_events(target, start_block, on_log, address=session.address):
            receipt = await session.send_tx(source, "incrementOnChain", [target])
            print(f"Sent cross-chain increment {source} -> {target}: {receipt.transaction_hash}")
            try:
                await asyncio.wait_for(seen.wait(), timeout=EVENT_TIMEOUT)
            except asyncio.TimeoutError:
                print(f"No Incremented event on {target} within {EVENT_TIMEOUT:.0f}s")
    finally:
        await session.close()


if __name__ == "__main__":
    asyncio.run(main())
