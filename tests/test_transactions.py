"""Tests for transaction submission and nonce serialization."""

import asyncio

import pytest

from superchain_session.exceptions import TransactionError
from superchain_session.session import MultiChainSession

from .conftest import FakeNetwork, FakeSigner


@pytest.mark.asyncio
async def test_send_tx_returns_receipt(session: MultiChainSession, network: FakeNetwork) -> None:
    receipt = await session.send_tx(901, "increment")

    assert receipt.chain_id == 901
    assert receipt.block_number == network.chains[901].block_number
    assert receipt.transaction_hash.startswith("0x")
    assert receipt.succeeded
    assert await session.call(901, "number") == 1


@pytest.mark.asyncio
async def test_increment_adds_exactly_one(session: MultiChainSession) -> None:
    before = await session.call(901, "number")
    await session.send_tx(901, "increment")

    assert await session.call(901, "number") == before + 1
    assert await session.call(902, "number") == 0


@pytest.mark.asyncio
async def test_sequential_sends_do_not_collide(
    session: MultiChainSession, signer: FakeSigner
) -> None:
    before = await session.call(901, "number")

    await session.send_tx(901, "increment")
    await session.send_tx(901, "increment")

    assert await session.call(901, "number") == before + 2
    nonces = [tx["nonce"] for chain_id, tx in signer.signed if chain_id == 901]
    assert nonces == sorted(set(nonces))


@pytest.mark.asyncio
async def test_concurrent_sends_on_same_chain_are_serialized(
    session: MultiChainSession,
) -> None:
    await session.ensure_deployed(901)

    receipts = await asyncio.gather(*(session.send_tx(901, "increment") for _ in range(4)))

    assert len({receipt.transaction_hash for receipt in receipts}) == 4
    assert await session.call(901, "number") == 4


@pytest.mark.asyncio
async def test_concurrent_sends_across_chains(session: MultiChainSession) -> None:
    await asyncio.gather(
        session.send_tx(901, "increment"),
        session.send_tx(902, "increment"),
        session.send_tx(902, "increment"),
    )

    assert await session.read_all("number") == {901: 1, 902: 2}


@pytest.mark.asyncio
async def test_transaction_is_signed_for_target_chain(
    session: MultiChainSession, signer: FakeSigner
) -> None:
    await session.send_tx(902, "setNumber", [41])

    chain_id, tx = signer.signed[-1]
    assert chain_id == 902
    assert tx["chainId"] == 902
    assert tx["to"] == session.address
    assert tx["gas"] == int(50_000 * session.config.gas_multiplier)
    assert await session.call(902, "number") == 41


@pytest.mark.asyncio
async def test_revert_raises_transaction_error(
    session: MultiChainSession, network: FakeNetwork
) -> None:
    await session.ensure_deployed(901)
    network.chains[901].revert_next = True

    with pytest.raises(TransactionError) as excinfo:
        await session.send_tx(901, "increment")

    err = excinfo.value
    assert err.chain_id == 901
    assert err.tx_hash is not None
    assert await session.call(901, "number") == 0

    # The reverted transaction still consumed its nonce; the next send lines up
    await session.send_tx(901, "increment")
    assert await session.call(901, "number") == 1


@pytest.mark.asyncio
async def test_submission_failure_is_not_retried(
    session: MultiChainSession, network: FakeNetwork
) -> None:
    await session.ensure_deployed(901)
    chain = network.chains[901]
    sent_before = chain.rpc_calls.count("eth_sendRawTransaction")
    chain.estimate_failures = 1

    with pytest.raises(TransactionError) as excinfo:
        await session.send_tx(901, "increment")

    assert excinfo.value.tx_hash is None
    assert chain.rpc_calls.count("eth_sendRawTransaction") == sent_before
    assert await session.call(901, "number") == 0


@pytest.mark.asyncio
async def test_nonce_resynced_after_failure(
    session: MultiChainSession, network: FakeNetwork, signer: FakeSigner
) -> None:
    await session.send_tx(901, "increment")
    chain = network.chains[901]

    # Another client using the same key advances the nonce behind our back
    chain.nonces[signer.address.lower()] += 1
    with pytest.raises(TransactionError):
        await session.send_tx(901, "increment")

    await session.send_tx(901, "increment")
    assert await session.call(901, "number") == 2


@pytest.mark.asyncio
async def test_receipt_timeout_raises_transaction_error(
    session: MultiChainSession, network: FakeNetwork
) -> None:
    await session.ensure_deployed(902)
    network.chains[902].withhold_receipts = True

    with pytest.raises(TransactionError) as excinfo:
        await session.send_tx(902, "increment")

    assert "Timed out" in excinfo.value.message
    assert excinfo.value.tx_hash is not None
