"""Bridge transfer records and their state machine."""
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

SCHEMA_VERSION = 1


class TransferStatus(str, Enum):
    CREATED = "created"
    SOURCE_PENDING = "source_pending"
    SOURCE_CONFIRMED = "source_confirmed"
    RELAYING = "relaying"
    DEST_CONFIRMED = "dest_confirmed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def message(self) -> str:
        """User-facing status text."""
        return _STATUS_MESSAGES[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


_STATUS_MESSAGES = {
    TransferStatus.CREATED: "Preparing transfer...",
    TransferStatus.SOURCE_PENDING: "Confirming transfer...",
    TransferStatus.SOURCE_CONFIRMED: "Transfer confirmed!",
    TransferStatus.RELAYING: "Waiting for delivery...",
    TransferStatus.DEST_CONFIRMED: "Transfer delivered!",
    TransferStatus.FAILED: "Transfer failed",
    TransferStatus.CANCELED: "Transfer canceled",
}

TERMINAL_STATUSES: FrozenSet[TransferStatus] = frozenset(
    {TransferStatus.DEST_CONFIRMED, TransferStatus.FAILED, TransferStatus.CANCELED}
)

# Canceled -> SourceConfirmed: a source receipt seen after a cancel still wins.
ALLOWED_TRANSITIONS: Dict[TransferStatus, FrozenSet[TransferStatus]] = {
    TransferStatus.CREATED: frozenset(
        {TransferStatus.SOURCE_PENDING, TransferStatus.FAILED, TransferStatus.CANCELED}
    ),
    TransferStatus.SOURCE_PENDING: frozenset(
        {TransferStatus.SOURCE_CONFIRMED, TransferStatus.FAILED, TransferStatus.CANCELED}
    ),
    TransferStatus.SOURCE_CONFIRMED: frozenset({TransferStatus.RELAYING, TransferStatus.FAILED}),
    TransferStatus.RELAYING: frozenset({TransferStatus.DEST_CONFIRMED, TransferStatus.FAILED}),
    TransferStatus.DEST_CONFIRMED: frozenset(),
    TransferStatus.FAILED: frozenset(),
    TransferStatus.CANCELED: frozenset({TransferStatus.SOURCE_CONFIRMED}),
}


class FailureReason(str, Enum):
    SOURCE_REVERTED = "source_reverted"
    DEST_REVERTED = "dest_reverted"
    RELAY_FAILED = "relay_failed"
    RECONCILIATION_TIMEOUT = "reconciliation_timeout"


@dataclass(frozen=True)
class TransferRequest:
    """
    What the user confirmed in the bridge form.

    ``amount`` is in the token's smallest unit.
    """

    source_chain_id: int
    dest_chain_id: int
    token_address: str
    amount: int
    sender: str
    recipient: str
    source_tx_hash: Optional[str] = None


@dataclass(frozen=True)
class BridgeTransfer:
    """One cross-chain transfer as recorded by the transfer store."""

    id: int
    source_chain_id: int
    dest_chain_id: int
    token_address: str
    amount: int
    sender: str
    recipient: str
    status: TransferStatus
    created_at: float
    last_checked_at: Optional[float] = None
    source_tx_hash: Optional[str] = None
    dest_tx_hash: Optional[str] = None
    message_id: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    error_message: Optional[str] = None
    schema_version: int = SCHEMA_VERSION

    @property
    def is_final(self) -> bool:
        return self.status.is_terminal

    @property
    def is_success(self) -> bool:
        return self.status == TransferStatus.DEST_CONFIRMED

    def can_transition(self, status: TransferStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition(self, status: TransferStatus, **changes) -> Optional["BridgeTransfer"]:
        """
        Return a copy moved to ``status``, or None if the move is not allowed.

        Parameters
        ----------
        status : TransferStatus
            Target status.
        **changes
            Other fields to set on the copy.
        """
        if not self.can_transition(status):
            return None
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["amount"] = str(self.amount)
        data["failure_reason"] = self.failure_reason.value if self.failure_reason else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeTransfer":
        failure_reason = data.get("failure_reason")
        return cls(
            id=int(data["id"]),
            source_chain_id=int(data["source_chain_id"]),
            dest_chain_id=int(data["dest_chain_id"]),
            token_address=data["token_address"],
            amount=int(data["amount"]),
            sender=data["sender"],
            recipient=data["recipient"],
            status=TransferStatus(data["status"]),
            created_at=float(data["created_at"]),
            last_checked_at=data.get("last_checked_at"),
            source_tx_hash=data.get("source_tx_hash"),
            dest_tx_hash=data.get("dest_tx_hash"),
            message_id=data.get("message_id"),
            failure_reason=FailureReason(failure_reason) if failure_reason else None,
            error_message=data.get("error_message"),
            schema_version=int(data.get("schema_version", SCHEMA_VERSION)),
        )
