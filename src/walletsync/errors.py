"""Typed failures raised by wallet and transfer operations."""
from typing import Optional


class WalletSyncError(Exception):
    """
    Base class for all walletsync failures.

    Parameters
    ----------
    message : str
        Human readable description.
    code : Optional[int]
        EIP-1193 style error code. Defaults to the class level code.
    """

    code: int = -32603

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_rpc_error(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidChain(WalletSyncError):
    """Chain id is not in the registry."""

    code = 4902

    def __init__(self, chain_id):
        super().__init__(f"Unrecognized chain id: {chain_id}")
        self.chain_id = chain_id


class InvalidAddress(WalletSyncError):
    code = -32602

    def __init__(self, address):
        super().__init__(f"Invalid address: {address!r}")
        self.address = address


class NotConnected(WalletSyncError):
    """An operation needs an account that is not connected."""

    code = 4900

    def __init__(self, message: str, chain_id: Optional[int] = None):
        super().__init__(message)
        self.chain_id = chain_id


class UnsupportedMethod(WalletSyncError):
    code = 4200

    def __init__(self, method: str, reason: Optional[str] = None):
        super().__init__(reason or f"Unsupported method: {method}")
        self.method = method


class ReceiptLookupFailure(WalletSyncError):
    """Transient failure while looking up chain or relay data. Retried."""

    code = -32603

    def __init__(self, chain_id: Optional[int], tx_hash: Optional[str], reason: str):
        super().__init__(f"Receipt lookup failed on chain {chain_id} for {tx_hash}: {reason}")
        self.chain_id = chain_id
        self.tx_hash = tx_hash
        self.reason = reason


class OnChainRevert(WalletSyncError):
    """A mined transaction reverted."""

    code = -32000

    def __init__(self, chain_id: int, tx_hash: str, reason: Optional[str] = None):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Transaction {tx_hash} reverted on chain {chain_id}{detail}")
        self.chain_id = chain_id
        self.tx_hash = tx_hash
        self.reason = reason


class ReconciliationTimeout(WalletSyncError):
    """No resolving evidence arrived within the polling bound."""

    code = -32001

    def __init__(self, transfer_id: int, elapsed: float, polls: int):
        super().__init__(
            f"Transfer {transfer_id} unresolved after {elapsed:.0f}s and {polls} polls; "
            "funds may still be in flight, check the explorer or contact support"
        )
        self.transfer_id = transfer_id
        self.elapsed = elapsed
        self.polls = polls


class TransferNotFound(WalletSyncError, KeyError):
    code = -32602

    def __init__(self, transfer_id):
        WalletSyncError.__init__(self, f"Unknown transfer id: {transfer_id}")
        self.transfer_id = transfer_id

    def __str__(self) -> str:
        return self.message
