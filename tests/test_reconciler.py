import asyncio

import pytest

from walletsync.transfers import (
    PollPolicy,
    TransferReconciler,
    TransferRequest,
    TransferStatus,
    TransferStore,
)

from conftest import ADDR_A, ADDR_B, SOURCE_TX, TOKEN, success


@pytest.fixture
def policy():
    return PollPolicy(initial_interval=5, max_interval=20, backoff=2.0, timeout=1800)


@pytest.fixture
def store(registry, rpc, clock, policy):
    return TransferStore(registry, rpc, policy=policy, clock=clock)


@pytest.fixture
def reconciler(store, policy, clock):
    return TransferReconciler(store, policy, clock)


def pending_transfer(store):
    transfer_id = store.create(TransferRequest(3888, 56, TOKEN, 1, ADDR_A, ADDR_B))
    store.record_source_tx(transfer_id, SOURCE_TX)
    return transfer_id


def test_policy_validation():
    with pytest.raises(ValueError):
        PollPolicy(initial_interval=0)
    with pytest.raises(ValueError):
        PollPolicy(backoff=0.5)
    assert PollPolicy(max_interval=60).next_interval(40) == 60


@pytest.mark.asyncio
async def test_backoff_grows_to_cap(store, reconciler, rpc, clock):
    transfer_id = pending_transfer(store)
    start = clock.now

    assert await reconciler.run_pass(start) == 1
    assert reconciler.schedule_for(transfer_id).interval == 10
    assert await reconciler.run_pass(start + 5) == 0
    assert await reconciler.run_pass(start + 10) == 1
    assert reconciler.schedule_for(transfer_id).interval == 20
    assert await reconciler.run_pass(start + 30) == 1
    assert reconciler.schedule_for(transfer_id).interval == 20
    assert reconciler.schedule_for(transfer_id).polls == 3


@pytest.mark.asyncio
async def test_progress_resets_interval(store, reconciler, rpc, clock):
    transfer_id = pending_transfer(store)
    await reconciler.run_pass(clock.now)
    rpc.set_receipt(3888, SOURCE_TX, success())

    await reconciler.run_pass(clock.now + 10)

    assert store.get_by_id(transfer_id).status == TransferStatus.RELAYING
    entry = reconciler.schedule_for(transfer_id)
    assert entry.interval == 5
    assert entry.polls == 0


@pytest.mark.asyncio
async def test_finished_transfers_leave_the_schedule(store, reconciler, clock):
    transfer_id = pending_transfer(store)
    await reconciler.run_pass(clock.now)
    store.cancel(transfer_id)
    clock.advance(1800)

    assert await reconciler.run_pass() == 0
    assert reconciler.schedule_for(transfer_id) is None


@pytest.mark.asyncio
async def test_timeout_reached_through_passes(store, reconciler, clock):
    transfer_id = pending_transfer(store)
    await reconciler.run_pass(clock.now)

    await reconciler.run_pass(clock.now + 1800)

    assert store.get_by_id(transfer_id).status == TransferStatus.FAILED


@pytest.mark.asyncio
async def test_pass_survives_unexpected_errors(store, reconciler, rpc, clock):
    first = pending_transfer(store)
    second = pending_transfer(store)
    rpc.set_receipt(3888, SOURCE_TX, RuntimeError("unexpected"))

    assert await reconciler.run_pass(clock.now) == 2
    assert store.get_by_id(first).status == TransferStatus.SOURCE_PENDING
    assert store.get_by_id(second).status == TransferStatus.SOURCE_PENDING
    assert reconciler.schedule_for(first).polls == 1


@pytest.mark.asyncio
async def test_start_and_stop(store, rpc, clock):
    fast = PollPolicy(initial_interval=5, max_interval=20, tick_interval=0.01)
    reconciler = TransferReconciler(store, fast, clock)
    transfer_id = pending_transfer(store)
    rpc.set_receipt(3888, SOURCE_TX, success())

    reconciler.start()
    assert reconciler.running
    for _ in range(50):
        if store.get_by_id(transfer_id).status == TransferStatus.RELAYING:
            break
        await asyncio.sleep(0.01)
    await reconciler.stop()

    assert not reconciler.running
    assert store.get_by_id(transfer_id).status == TransferStatus.RELAYING
