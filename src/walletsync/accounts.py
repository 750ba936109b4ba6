"""Per-chain wallet account records for the internal wallet."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from web3 import Web3

from walletsync.chains import ChainRegistry
from walletsync.errors import InvalidAddress
from walletsync.events import EventEmitter, MutationQueue


def normalize_address(address: str) -> str:
    """Return the EIP-55 checksum form of an address or raise InvalidAddress."""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidAddress(address)
    return Web3.to_checksum_address(address)


@dataclass(frozen=True)
class WalletAccount:
    """Internal wallet account for one chain."""

    chain_id: int
    address: Optional[str] = None
    connected_at: Optional[float] = None

    @property
    def connected(self) -> bool:
        return self.address is not None


class AccountChangeKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class AccountChange:
    """
    Notification payload for store listeners.

    For DISCONNECTED changes ``account`` is the record that was vacated.
    ``replacing`` marks the implicit disconnect that precedes adopting a
    new address on an already connected chain.
    """

    kind: AccountChangeKind
    chain_id: int
    account: WalletAccount
    replacing: bool = False


AccountListener = Callable[[AccountChange], None]


class WalletAccountStore:
    """
    Holds at most one connected address per chain.

    Every mutation notifies listeners synchronously, in registration
    order, before the mutating call returns.

    Parameters
    ----------
    registry : ChainRegistry
        Supported chains.
    queue : Optional[MutationQueue]
        Mutation queue shared with the providers built on this store.
    clock : Callable[[], float]
        Time source for ``connected_at``.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        queue: Optional[MutationQueue] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.queue = queue or MutationQueue()
        self._clock = clock
        self._accounts: Dict[int, WalletAccount] = {}
        self._emitter = EventEmitter(("change",), self.queue)

    def add_listener(self, listener: AccountListener) -> None:
        self._emitter.on("change", listener)

    def remove_listener(self, listener: AccountListener) -> None:
        self._emitter.off("change", listener)

    def get(self, chain_id: int) -> Optional[WalletAccount]:
        return self._accounts.get(chain_id)

    def list_connected(self) -> List[WalletAccount]:
        """Connected accounts in connection order."""
        return list(self._accounts.values())

    def connect(self, chain_id: int, address: str) -> Optional[WalletAccount]:
        """
        Record ``address`` as the account for ``chain_id``.

        Parameters
        ----------
        chain_id : int
            Registered chain id.
        address : str
            Account address, any case.

        Returns
        -------
        Optional[WalletAccount]
            The stored account, or None when the call was made from inside
            a listener and has been queued.
        """
        self.registry.require(chain_id)
        checksum = normalize_address(address)
        return self.queue.run(self._connect, chain_id, checksum)

    def disconnect(self, chain_id: int) -> None:
        self.registry.require(chain_id)
        self.queue.run(self._disconnect, chain_id, False)

    def reset(self) -> None:
        """Disconnect every chain."""
        for chain_id in list(self._accounts):
            self.disconnect(chain_id)

    def _connect(self, chain_id: int, address: str) -> WalletAccount:
        current = self._accounts.get(chain_id)
        if current is not None and current.address == address:
            return current
        if current is not None:
            logging.info(
                f"Replacing account on chain {chain_id}: {current.address} -> {address}"
            )
            self._disconnect(chain_id, True)

        account = WalletAccount(chain_id=chain_id, address=address, connected_at=self._clock())
        self._accounts[chain_id] = account
        logging.info(f"Wallet account connected: {address} on chain {chain_id}")
        self._emitter.emit(
            "change", AccountChange(AccountChangeKind.CONNECTED, chain_id, account)
        )
        return account

    def _disconnect(self, chain_id: int, replacing: bool) -> None:
        account = self._accounts.pop(chain_id, None)
        if account is None:
            return
        logging.info(f"Wallet account disconnected: {account.address} on chain {chain_id}")
        self._emitter.emit(
            "change",
            AccountChange(AccountChangeKind.DISCONNECTED, chain_id, account, replacing),
        )
