"""Bridge transfer store: lifecycle, persistence and reconciliation."""
import asyncio
import logging
import re
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from walletsync.accounts import normalize_address
from walletsync.chains import ChainRegistry
from walletsync.errors import (
    OnChainRevert,
    ReceiptLookupFailure,
    ReconciliationTimeout,
    TransferNotFound,
    WalletSyncError,
)
from walletsync.events import EventEmitter, MutationQueue
from walletsync.rpc import ChainRpc

from .models import BridgeTransfer, FailureReason, TransferRequest, TransferStatus
from .persistence import JsonTransferRepository
from .reconciler import PollPolicy
from .relay import RelayStatus, RelayTracker, extract_message_id

TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

TransferListener = Callable[[BridgeTransfer], None]


def _normalize_tx_hash(tx_hash: str) -> str:
    if not isinstance(tx_hash, str) or not TX_HASH_RE.match(tx_hash):
        raise ValueError(f"Invalid transaction hash: {tx_hash!r}")
    return tx_hash.lower()


class TransferStore:
    """
    Owns every BridgeTransfer record.

    Records change only through this class: ``create``, ``record_source_tx``,
    ``cancel`` and ``reconcile``. Each change is stored, persisted and then
    announced to ``on_change`` handlers. A change requested from inside a
    handler is queued until every handler has seen the current one.

    Parameters
    ----------
    registry : ChainRegistry
        Supported chains.
    rpc : ChainRpc
        Receipt lookups on both chains.
    relay : Optional[RelayTracker]
        Relay evidence source. Without one, transfers wait in Relaying
        until they time out.
    repository : Optional[JsonTransferRepository]
        Persistence. None keeps records in memory only.
    policy : Optional[PollPolicy]
        Timeout bounds used by ``reconcile``.
    clock : Callable[[], float]
        Time source.
    queue : Optional[MutationQueue]
        Queue that serializes record changes and their announcements.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        rpc: ChainRpc,
        relay: Optional[RelayTracker] = None,
        repository: Optional[JsonTransferRepository] = None,
        policy: Optional[PollPolicy] = None,
        clock: Callable[[], float] = time.time,
        queue: Optional[MutationQueue] = None,
    ):
        self.registry = registry
        self.rpc = rpc
        self.relay = relay
        self.repository = repository
        self.policy = policy or PollPolicy()
        self._clock = clock
        self.queue = queue or MutationQueue()
        self._events = EventEmitter(("change",), self.queue)
        self._locks: Dict[int, asyncio.Lock] = {}
        self._transfers: Dict[int, BridgeTransfer] = {}
        self._next_id = 1

        if repository is not None:
            loaded = repository.load()
            self._transfers = dict(loaded.transfers)
            self._next_id = loaded.next_id

    def on_change(self, handler: TransferListener) -> None:
        """
        Call ``handler(transfer)`` after every stored change.

        The record is already readable through ``get_by_id`` when the
        handler runs. Changes the handler requests are queued.
        """
        self._events.on("change", handler)

    def off_change(self, handler: TransferListener) -> None:
        self._events.off("change", handler)

    def list(self) -> List[BridgeTransfer]:
        """All transfers, oldest first."""
        return [self._transfers[key] for key in sorted(self._transfers)]

    def get_by_id(self, transfer_id: int) -> Optional[BridgeTransfer]:
        """The transfer with this id, or None."""
        return self._transfers.get(transfer_id)

    def latest(self) -> Optional[BridgeTransfer]:
        """The most recently created transfer, or None when there are none."""
        if not self._transfers:
            return None
        return self._transfers[max(self._transfers)]

    def pending(self) -> List[BridgeTransfer]:
        """Transfers not yet in a terminal status, oldest first."""
        return [t for t in self.list() if not t.is_final]

    def reconcilable(self, now: Optional[float] = None) -> List[BridgeTransfer]:
        """
        Transfers a reconciliation pass should look at.

        Non-terminal transfers, plus canceled ones with a known source
        transaction that are still inside the timeout window, since their
        source transaction may yet confirm.
        """
        now = self._clock() if now is None else now
        result = []
        for transfer in self.list():
            if not transfer.is_final:
                result.append(transfer)
            elif (
                transfer.status == TransferStatus.CANCELED
                and transfer.source_tx_hash
                and now - transfer.created_at < self.policy.timeout
            ):
                result.append(transfer)
        return result

    def _require(self, transfer_id: int) -> BridgeTransfer:
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise TransferNotFound(transfer_id)
        return transfer

    def _persist(self) -> None:
        if self.repository is not None:
            self.repository.save(self._next_id, self._transfers.values())

    def _apply(self, transfer: BridgeTransfer, note: str = "") -> BridgeTransfer:
        previous = self._transfers.get(transfer.id)
        self._transfers[transfer.id] = transfer
        self._persist()
        old = previous.status.value if previous else "new"
        logging.info(
            f"Transfer {transfer.id}: {old} -> {transfer.status.value}{' ' + note if note else ''}"
        )
        self._events.emit("change", transfer)
        return transfer

    def create(self, request: TransferRequest) -> Optional[int]:
        """
        Record a new transfer.

        Parameters
        ----------
        request : TransferRequest
            Confirmed bridge action. A request that already carries its
            source transaction hash starts in SourcePending.

        Returns
        -------
        Optional[int]
            The new transfer id, or None when queued from inside a handler.
        """
        self.registry.require(request.source_chain_id)
        self.registry.require(request.dest_chain_id)
        if request.source_chain_id == request.dest_chain_id:
            raise ValueError("Source and destination chains must differ")
        if isinstance(request.amount, bool) or not isinstance(request.amount, int):
            raise ValueError(f"Amount must be an integer, got {request.amount!r}")
        if request.amount <= 0:
            raise ValueError(f"Amount must be positive, got {request.amount}")
        token_address = normalize_address(request.token_address)
        sender = normalize_address(request.sender)
        recipient = normalize_address(request.recipient)
        source_tx_hash = None
        if request.source_tx_hash is not None:
            source_tx_hash = _normalize_tx_hash(request.source_tx_hash)
        return self.queue.run(
            self._create, request, token_address, sender, recipient, source_tx_hash
        )

    def _create(
        self,
        request: TransferRequest,
        token_address: str,
        sender: str,
        recipient: str,
        source_tx_hash: Optional[str],
    ) -> int:
        transfer = BridgeTransfer(
            id=self._next_id,
            source_chain_id=request.source_chain_id,
            dest_chain_id=request.dest_chain_id,
            token_address=token_address,
            amount=request.amount,
            sender=sender,
            recipient=recipient,
            status=TransferStatus.SOURCE_PENDING if source_tx_hash else TransferStatus.CREATED,
            created_at=self._clock(),
            source_tx_hash=source_tx_hash,
        )
        self._next_id += 1
        self._apply(transfer, f"({request.source_chain_id} -> {request.dest_chain_id})")
        return transfer.id

    def record_source_tx(self, transfer_id: int, tx_hash: str) -> Optional[bool]:
        """
        Mark the source transaction as submitted.

        Returns False if not applicable and None when queued from inside a
        handler.
        """
        self._require(transfer_id)
        tx_hash = _normalize_tx_hash(tx_hash)
        return self.queue.run(self._record_source_tx, transfer_id, tx_hash)

    def _record_source_tx(self, transfer_id: int, tx_hash: str) -> bool:
        transfer = self._require(transfer_id)
        updated = transfer.transition(TransferStatus.SOURCE_PENDING, source_tx_hash=tx_hash)
        if updated is None:
            logging.warning(
                f"Transfer {transfer_id} is {transfer.status.value}, source tx {tx_hash} ignored"
            )
            return False
        self._apply(updated, tx_hash)
        return True

    def cancel(self, transfer_id: int) -> Optional[bool]:
        """
        Cancel a transfer not yet seen on-chain.

        Returns
        -------
        Optional[bool]
            False when the transfer is past SourcePending, None when queued
            from inside a handler.
        """
        self._require(transfer_id)
        return self.queue.run(self._cancel, transfer_id)

    def _cancel(self, transfer_id: int) -> bool:
        transfer = self._require(transfer_id)
        updated = transfer.transition(TransferStatus.CANCELED)
        if updated is None:
            logging.info(f"Transfer {transfer_id} is {transfer.status.value}, cannot cancel")
            return False
        self._apply(updated, "by user")
        return True

    def prune(self, max_age: float, now: Optional[float] = None) -> int:
        """Drop terminal transfers created more than ``max_age`` seconds ago."""
        now = self._clock() if now is None else now
        expired = [
            t.id
            for t in self._transfers.values()
            if t.is_final
            and now - t.created_at > max_age
            and not (t.id in self._locks and self._locks[t.id].locked())
        ]
        if not expired:
            return 0
        for transfer_id in expired:
            del self._transfers[transfer_id]
            self._locks.pop(transfer_id, None)
        self._persist()
        logging.info(f"Pruned {len(expired)} finished transfers older than {max_age:.0f}s")
        return len(expired)

    def _fail(self, transfer: BridgeTransfer, reason: FailureReason, error: WalletSyncError, **changes):
        updated = transfer.transition(
            TransferStatus.FAILED, failure_reason=reason, error_message=error.message, **changes
        )
        if updated is None:
            return None
        return self._apply(updated, f"({reason.value})")

    def _timed_out(self, transfer: BridgeTransfer, now: float, polls: int) -> bool:
        if now - transfer.created_at >= self.policy.timeout:
            return True
        return self.policy.max_polls is not None and polls >= self.policy.max_polls

    async def reconcile(self, transfer_id: int, now: Optional[float] = None, polls: int = 0) -> bool:
        """
        Run one reconciliation pass for a transfer.

        At most one pass per transfer id runs at a time; a second caller
        waits for the first. Lookup failures are logged and count as no
        progress.

        Parameters
        ----------
        transfer_id : int
            Transfer to reconcile.
        now : Optional[float]
            Pass time; the store clock when None.
        polls : int
            Passes already made without progress, for the poll-count bound.

        Returns
        -------
        bool
            Whether the transfer's status changed.
        """
        lock = self._locks.setdefault(transfer_id, asyncio.Lock())
        async with lock:
            return await self._reconcile(transfer_id, now, polls)

    async def _reconcile(self, transfer_id: int, now: Optional[float], polls: int) -> bool:
        transfer = self._require(transfer_id)
        if transfer.is_final and not (
            transfer.status == TransferStatus.CANCELED and transfer.source_tx_hash
        ):
            return False
        now = self._clock() if now is None else now

        start_status = transfer.status
        try:
            await self._advance(transfer_id)
        except ReceiptLookupFailure as e:
            logging.warning(f"Transfer {transfer_id} lookup failed, retrying later: {e}")

        transfer = self._transfers[transfer_id]
        progressed = transfer.status != start_status
        if not progressed and not transfer.is_final and self._timed_out(transfer, now, polls):
            elapsed = now - transfer.created_at
            self._fail(
                transfer,
                FailureReason.RECONCILIATION_TIMEOUT,
                ReconciliationTimeout(transfer_id, elapsed, polls),
            )
            progressed = True

        transfer = self._transfers[transfer_id]
        self._transfers[transfer_id] = replace(transfer, last_checked_at=now)
        self._persist()
        return progressed

    async def _advance(self, transfer_id: int) -> bool:
        progressed = False
        while True:
            transfer = self._transfers[transfer_id]
            status = transfer.status

            if status in (TransferStatus.SOURCE_PENDING, TransferStatus.CANCELED):
                if not transfer.source_tx_hash:
                    return progressed
                receipt = await self.rpc.get_receipt(
                    transfer.source_chain_id, transfer.source_tx_hash
                )
                transfer = self._transfers[transfer_id]
                if receipt is None or transfer.status not in (
                    TransferStatus.SOURCE_PENDING,
                    TransferStatus.CANCELED,
                ):
                    return progressed
                if not receipt.succeeded:
                    if transfer.status == TransferStatus.CANCELED:
                        return progressed
                    self._fail(
                        transfer,
                        FailureReason.SOURCE_REVERTED,
                        OnChainRevert(
                            transfer.source_chain_id, transfer.source_tx_hash, receipt.revert_reason
                        ),
                    )
                    return True
                if transfer.status == TransferStatus.CANCELED:
                    logging.warning(
                        f"Transfer {transfer_id} was canceled but its source tx confirmed"
                    )
                self._apply(
                    transfer.transition(
                        TransferStatus.SOURCE_CONFIRMED, message_id=extract_message_id(receipt)
                    ),
                    f"block {receipt.block_number}",
                )
                progressed = True
                continue

            if status == TransferStatus.SOURCE_CONFIRMED:
                self._apply(transfer.transition(TransferStatus.RELAYING))
                progressed = True
                continue

            if status == TransferStatus.RELAYING:
                return await self._check_relay(transfer_id) or progressed

            return progressed

    async def _check_relay(self, transfer_id: int) -> bool:
        if self.relay is None:
            logging.debug(f"No relay tracker configured, transfer {transfer_id} waits")
            return False
        report = await self.relay.lookup(self._transfers[transfer_id])
        transfer = self._transfers[transfer_id]
        if transfer.status != TransferStatus.RELAYING:
            return False

        if report.status == RelayStatus.FAILED:
            error = WalletSyncError(report.reason or "Relay reported delivery failure")
            self._fail(transfer, FailureReason.RELAY_FAILED, error)
            return True
        if report.status != RelayStatus.DELIVERED:
            return False
        if not report.dest_tx_hash:
            logging.warning(f"Relay reports transfer {transfer_id} delivered without a tx hash")
            return False

        dest_tx_hash = report.dest_tx_hash.lower()
        receipt = await self.rpc.get_receipt(transfer.dest_chain_id, dest_tx_hash)
        transfer = self._transfers[transfer_id]
        if receipt is None or transfer.status != TransferStatus.RELAYING:
            return False
        if not receipt.succeeded:
            self._fail(
                transfer,
                FailureReason.DEST_REVERTED,
                OnChainRevert(transfer.dest_chain_id, dest_tx_hash, receipt.revert_reason),
                dest_tx_hash=dest_tx_hash,
            )
            return True
        self._apply(
            transfer.transition(TransferStatus.DEST_CONFIRMED, dest_tx_hash=dest_tx_hash),
            f"block {receipt.block_number}",
        )
        return True
