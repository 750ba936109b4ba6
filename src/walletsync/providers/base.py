"""Base wallet provider interface shared by internal and external wallets."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from walletsync.events import EventEmitter, Handler

PROVIDER_EVENTS = ("connect", "disconnect", "accountsChanged", "chainChanged")


@dataclass(frozen=True)
class WalletInfo:
    """Wallet information."""

    address: str
    chain_id: int
    provider_name: str = "unknown"


class WalletProvider(ABC):
    """
    Abstract base class for wallet providers.

    Subclasses emit ``connect``, ``disconnect``, ``accountsChanged`` and
    ``chainChanged`` through ``self.events`` so that upper layers can treat
    every provider the same way.
    """

    connector_id: str = "unknown"

    def __init__(self, events: Optional[EventEmitter] = None):
        self.events = events or EventEmitter(PROVIDER_EVENTS)

    def on(self, event: str, handler: Handler) -> None:
        self.events.on(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self.events.off(event, handler)

    @abstractmethod
    def get_account(self) -> Optional[WalletInfo]:
        """
        Current account, if any.

        Returns
        -------
        Optional[WalletInfo]
            Address and chain the provider presents right now.
        """
        pass

    @abstractmethod
    async def connect(self, chain_id: Optional[int] = None) -> WalletInfo:
        """
        Connect to the wallet.

        Parameters
        ----------
        chain_id : Optional[int]
            Chain to connect on. Providers pick their own default when None.

        Returns
        -------
        WalletInfo
            Connected wallet information.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the wallet."""
        pass

    @abstractmethod
    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        EIP-1193 style request.

        Parameters
        ----------
        method : str
            JSON-RPC method name.
        params : Optional[List[Any]]
            Positional parameters.

        Returns
        -------
        Any
            Method result.
        """
        pass
