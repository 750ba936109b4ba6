import json

import pytest

from walletsync.transfers import (
    SCHEMA_VERSION,
    JsonTransferRepository,
    TransferRequest,
    TransferStatus,
    TransferStore,
)

from conftest import ADDR_A, ADDR_B, SOURCE_TX, TOKEN, reverted


def request(amount=1000):
    return TransferRequest(3888, 56, TOKEN, amount, ADDR_A, ADDR_B)


@pytest.fixture
def state_file(tmp_path):
    return str(tmp_path / "state" / "transfers.json")


def test_transfers_survive_restart(registry, rpc, clock, state_file):
    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)
    first = store.create(request(10**30))
    store.record_source_tx(first, SOURCE_TX)

    reloaded = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)

    assert reloaded.list() == store.list()
    assert reloaded.get_by_id(first).amount == 10**30
    assert reloaded.create(request()) == first + 1


def test_ids_never_reused_after_prune(registry, rpc, clock, state_file):
    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)
    transfer_id = store.create(request())
    store.cancel(transfer_id)
    clock.advance(10)
    store.prune(1)

    reloaded = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)

    assert reloaded.list() == []
    assert reloaded.create(request()) == transfer_id + 1


@pytest.mark.asyncio
async def test_failure_reason_round_trips(registry, rpc, clock, state_file):
    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)
    transfer_id = store.create(request())
    store.record_source_tx(transfer_id, SOURCE_TX)
    rpc.set_receipt(3888, SOURCE_TX, reverted())
    await store.reconcile(transfer_id)

    reloaded = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)

    assert reloaded.get_by_id(transfer_id) == store.get_by_id(transfer_id)


def test_unknown_schema_versions_are_skipped_and_preserved(registry, rpc, clock, state_file, tmp_path):
    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)
    known = store.create(request())

    with open(state_file) as f:
        data = json.load(f)
    future = dict(data["transfers"][str(known)], id=7, schema_version=SCHEMA_VERSION + 1)
    data["transfers"]["7"] = future
    with open(state_file, "w") as f:
        json.dump(data, f)

    reloaded = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)

    assert [t.id for t in reloaded.list()] == [known]
    assert reloaded.create(request()) == 8

    with open(state_file) as f:
        saved = json.load(f)
    assert saved["transfers"]["7"] == future
    assert saved["schema_version"] == SCHEMA_VERSION


def test_corrupt_file_is_moved_aside(registry, rpc, clock, state_file, tmp_path):
    (tmp_path / "state").mkdir()
    with open(state_file, "w") as f:
        f.write("{not json")

    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)

    assert store.list() == []
    assert (tmp_path / "state" / "transfers.json.corrupt").exists()


def test_document_shape(registry, rpc, clock, state_file):
    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)
    transfer_id = store.create(request())

    with open(state_file) as f:
        data = json.load(f)

    assert data["next_id"] == transfer_id + 1
    record = data["transfers"][str(transfer_id)]
    assert record["status"] == TransferStatus.CREATED.value
    assert record["amount"] == "1000"
    assert record["schema_version"] == SCHEMA_VERSION


def test_unreadable_records_are_skipped_and_preserved(registry, rpc, clock, state_file, tmp_path):
    (tmp_path / "state").mkdir()
    broken = {"schema_version": SCHEMA_VERSION, "id": 1, "status": "bogus"}
    with open(state_file, "w") as f:
        json.dump({"schema_version": SCHEMA_VERSION, "next_id": 2, "transfers": {"1": broken}}, f)

    store = TransferStore(registry, rpc, repository=JsonTransferRepository(state_file), clock=clock)

    assert store.list() == []
    assert store.create(request()) == 2

    with open(state_file) as f:
        saved = json.load(f)
    assert saved["transfers"]["1"] == broken
    assert saved["transfers"]["2"]["status"] == TransferStatus.CREATED.value
