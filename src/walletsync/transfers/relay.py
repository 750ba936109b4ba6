"""Relay evidence: correlate a source-chain send with its destination delivery."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import httpx

from walletsync.errors import ReceiptLookupFailure
from walletsync.rpc import Receipt

from .models import BridgeTransfer

# Hyperlane Mailbox DispatchId(bytes32 indexed messageId)
DISPATCH_ID_TOPIC = "0x788dbc1b7152732178210e7f4d9d010ef016f9eafbe66786bd7169f56e0c353a"


class RelayStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class RelayReport:
    status: RelayStatus
    dest_tx_hash: Optional[str] = None
    reason: Optional[str] = None


def extract_message_id(receipt: Receipt) -> Optional[str]:
    """Return the relay message id from a source receipt's DispatchId log."""
    for log in receipt.logs:
        topics = log.get("topics") or []
        if len(topics) > 1 and str(topics[0]).lower() == DISPATCH_ID_TOPIC:
            return str(topics[1]).lower()
    return None


def match_delivery(
    deliveries: Iterable[Dict[str, Any]], transfer: BridgeTransfer
) -> Optional[Dict[str, Any]]:
    """
    Find the delivery for a transfer by amount, recipient and source tx hash.

    Parameters
    ----------
    deliveries : Iterable[Dict[str, Any]]
        Delivery records with ``origin_tx_hash``, ``recipient`` and ``amount``.
    transfer : BridgeTransfer
        Transfer to match.

    Returns
    -------
    Optional[Dict[str, Any]]
        The first matching delivery.
    """
    if not transfer.source_tx_hash:
        return None
    for delivery in deliveries:
        try:
            amount = int(delivery.get("amount"))
        except (TypeError, ValueError):
            continue
        if (
            str(delivery.get("origin_tx_hash", "")).lower() == transfer.source_tx_hash.lower()
            and str(delivery.get("recipient", "")).lower() == transfer.recipient.lower()
            and amount == transfer.amount
        ):
            return delivery
    return None


class RelayTracker(ABC):
    """Source of evidence about a transfer's relay and destination delivery."""

    @abstractmethod
    async def lookup(self, transfer: BridgeTransfer) -> RelayReport:
        """
        Report what the relay knows about a transfer.

        Transport failures raise ReceiptLookupFailure.
        """
        pass


def _report_from(data: Dict[str, Any], default: RelayStatus = RelayStatus.PENDING) -> RelayReport:
    try:
        status = RelayStatus(str(data.get("status", default.value)).lower())
    except ValueError:
        status = RelayStatus.PENDING
    return RelayReport(
        status=status,
        dest_tx_hash=data.get("destination_tx_hash"),
        reason=data.get("reason"),
    )


class HttpRelayTracker(RelayTracker):
    """
    Relay tracker backed by a relay status HTTP API.

    Queries ``GET {base_url}/messages/{message_id}`` when the transfer has a
    message id, and otherwise searches
    ``GET {base_url}/deliveries?originTxHash=..&recipient=..&amount=..``.

    Parameters
    ----------
    base_url : str
        API root.
    client : Optional[httpx.AsyncClient]
        Client to use; one is created (and owned) when None.
    timeout : float
        Request timeout in seconds for an owned client.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _get(self, transfer: BridgeTransfer, url: str, params=None) -> Optional[Any]:
        try:
            resp = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise ReceiptLookupFailure(
                transfer.dest_chain_id, transfer.source_tx_hash, f"relay request failed: {e}"
            ) from e
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise ReceiptLookupFailure(
                transfer.dest_chain_id, transfer.source_tx_hash, f"relay returned HTTP {resp.status_code}"
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ReceiptLookupFailure(
                transfer.dest_chain_id, transfer.source_tx_hash, "relay returned invalid JSON"
            ) from e

    async def lookup(self, transfer: BridgeTransfer) -> RelayReport:
        if transfer.message_id:
            data = await self._get(transfer, f"{self.base_url}/messages/{transfer.message_id}")
            if not data:
                return RelayReport(RelayStatus.PENDING)
            return _report_from(data)

        params = {
            "originTxHash": transfer.source_tx_hash,
            "recipient": transfer.recipient,
            "amount": str(transfer.amount),
        }
        data = await self._get(transfer, f"{self.base_url}/deliveries", params=params)
        if not data:
            return RelayReport(RelayStatus.PENDING)
        deliveries = data.get("deliveries", []) if isinstance(data, dict) else data
        delivery = match_delivery(deliveries, transfer)
        if delivery is None:
            logging.debug(f"No matching delivery yet for transfer {transfer.id}")
            return RelayReport(RelayStatus.PENDING)
        return _report_from(delivery, RelayStatus.DELIVERED)
