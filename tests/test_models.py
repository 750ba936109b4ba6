from walletsync.transfers import BridgeTransfer, FailureReason, TransferStatus

from conftest import ADDR_A, ADDR_B, TOKEN


def make(status=TransferStatus.CREATED, **overrides):
    fields = dict(
        id=1,
        source_chain_id=3888,
        dest_chain_id=56,
        token_address=TOKEN,
        amount=1,
        sender=ADDR_A,
        recipient=ADDR_B,
        status=status,
        created_at=0.0,
    )
    fields.update(overrides)
    return BridgeTransfer(**fields)


def test_status_messages():
    assert TransferStatus.DEST_CONFIRMED.message == "Transfer delivered!"
    assert TransferStatus.FAILED.message == "Transfer failed"
    assert TransferStatus.SOURCE_CONFIRMED.message == "Transfer confirmed!"


def test_terminal_states_reject_every_transition():
    for terminal in (TransferStatus.DEST_CONFIRMED, TransferStatus.FAILED):
        transfer = make(terminal)
        for target in TransferStatus:
            assert transfer.transition(target) is None


def test_canceled_only_yields_to_confirmed_source():
    transfer = make(TransferStatus.CANCELED)
    allowed = [s for s in TransferStatus if transfer.transition(s) is not None]
    assert allowed == [TransferStatus.SOURCE_CONFIRMED]


def test_cancel_only_before_source_confirmation():
    assert make(TransferStatus.CREATED).can_transition(TransferStatus.CANCELED)
    assert make(TransferStatus.SOURCE_PENDING).can_transition(TransferStatus.CANCELED)
    assert not make(TransferStatus.SOURCE_CONFIRMED).can_transition(TransferStatus.CANCELED)
    assert not make(TransferStatus.RELAYING).can_transition(TransferStatus.CANCELED)


def test_transition_returns_copy():
    transfer = make()
    moved = transfer.transition(TransferStatus.SOURCE_PENDING, source_tx_hash="0xabc")
    assert transfer.status == TransferStatus.CREATED
    assert moved.status == TransferStatus.SOURCE_PENDING
    assert moved.source_tx_hash == "0xabc"


def test_dict_round_trip_keeps_failure_detail():
    transfer = make(
        TransferStatus.FAILED,
        amount=10**40,
        failure_reason=FailureReason.RECONCILIATION_TIMEOUT,
        error_message="gave up",
    )
    data = transfer.to_dict()
    assert data["amount"] == str(10**40)
    assert data["failure_reason"] == "reconciliation_timeout"
    assert BridgeTransfer.from_dict(data) == transfer
