"""Cross-chain bridge transfer tracking."""
from .models import BridgeTransfer, FailureReason, TransferRequest, TransferStatus
from .persistence import SCHEMA_VERSION, JsonTransferRepository
from .reconciler import PollPolicy, TransferReconciler
from .relay import (
    HttpRelayTracker,
    RelayReport,
    RelayStatus,
    RelayTracker,
    extract_message_id,
    match_delivery,
)
from .store import TransferStore

__all__ = [
    "BridgeTransfer",
    "FailureReason",
    "TransferRequest",
    "TransferStatus",
    "SCHEMA_VERSION",
    "JsonTransferRepository",
    "PollPolicy",
    "TransferReconciler",
    "HttpRelayTracker",
    "RelayReport",
    "RelayStatus",
    "RelayTracker",
    "extract_message_id",
    "match_delivery",
    "TransferStore",
]
