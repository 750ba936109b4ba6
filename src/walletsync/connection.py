"""External wallet-connection library: tracks which connector is active."""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from walletsync.events import EventEmitter, Handler, MutationQueue
from walletsync.providers.base import WalletInfo, WalletProvider

LIBRARY_EVENTS = ("connectorChanged", "accountsChanged", "chainChanged")


class ConnectionLibrary(ABC):
    """
    Connection library seen by the bridge.

    Emits ``connectorChanged(connector_id)``, ``accountsChanged(list)`` and
    ``chainChanged(chain_id)`` for whichever connector is active.

    Parameters
    ----------
    queue : Optional[MutationQueue]
        Queue that defers connector switches requested from event handlers.
        Share it with the wallet stores so one dispatch covers them all.
    """

    def __init__(self, queue: Optional[MutationQueue] = None):
        self.queue = queue or MutationQueue()
        self.events = EventEmitter(LIBRARY_EVENTS, self.queue)

    def on(self, event: str, handler: Handler) -> None:
        self.events.on(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self.events.off(event, handler)

    @property
    @abstractmethod
    def active_connector_id(self) -> Optional[str]:
        """
        Id of the connector the library currently uses.

        Returns
        -------
        Optional[str]
            None when no connector is active.
        """
        pass

    @abstractmethod
    def get_account(self) -> Optional[WalletInfo]:
        """Account of the active connector, if any."""
        pass

    @abstractmethod
    async def connect(self, connector_id: str, chain_id: Optional[int] = None) -> WalletInfo:
        """
        Connect a connector and make it the active one.

        Parameters
        ----------
        connector_id : str
            Connector to use.
        chain_id : Optional[int]
            Chain to connect on; the connector's default when None.

        Returns
        -------
        WalletInfo
            The connected account.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect the active connector and leave no connector active."""
        pass


class ConnectorManager(ConnectionLibrary):
    """
    Connection library over registered wallet providers.

    Parameters
    ----------
    connectors : Iterable[WalletProvider]
        Providers available as connectors, keyed by their ``connector_id``.
    queue : Optional[MutationQueue]
        Mutation queue, see ``ConnectionLibrary``.
    """

    def __init__(self, connectors: Iterable[WalletProvider] = (), queue: Optional[MutationQueue] = None):
        super().__init__(queue)
        self._connectors: Dict[str, WalletProvider] = {}
        self._active_id: Optional[str] = None
        for provider in connectors:
            self.register(provider)

    def register(self, provider: WalletProvider) -> None:
        connector_id = provider.connector_id
        if connector_id in self._connectors:
            raise ValueError(f"Connector already registered: {connector_id}")
        self._connectors[connector_id] = provider
        provider.on("accountsChanged", lambda accounts: self._forward_accounts(connector_id, accounts))
        provider.on("chainChanged", lambda chain_id: self._forward_chain(connector_id, chain_id))
        logging.info(f"Connector registered: {connector_id}")

    def connector(self, connector_id: str) -> WalletProvider:
        provider = self._connectors.get(connector_id)
        if provider is None:
            raise ValueError(f"Unknown connector: {connector_id}")
        return provider

    def connector_ids(self) -> List[str]:
        return list(self._connectors)

    def __contains__(self, connector_id) -> bool:
        return connector_id in self._connectors

    @property
    def active_connector_id(self) -> Optional[str]:
        return self._active_id

    def get_account(self) -> Optional[WalletInfo]:
        if self._active_id is None:
            return None
        return self._connectors[self._active_id].get_account()

    async def connect(self, connector_id: str, chain_id: Optional[int] = None) -> WalletInfo:
        provider = self.connector(connector_id)
        wallet_info = await provider.connect(chain_id)
        self.queue.run(self._set_active, connector_id)
        return wallet_info

    def activate(self, connector_id: str) -> None:
        """
        Make an already connected connector the active one.

        Called from an event handler, the switch is queued and runs once
        the current dispatch has reached every handler.
        """
        self.connector(connector_id)
        self.queue.run(self._set_active, connector_id)

    async def disconnect(self) -> None:
        if self._active_id is None:
            return
        await self._connectors[self._active_id].disconnect()
        if self._active_id is not None:
            self.queue.run(self._set_active, None)

    def _forward_accounts(self, connector_id: str, accounts: List[str]) -> None:
        if connector_id != self._active_id:
            return
        self.events.emit("accountsChanged", accounts)

    def _forward_chain(self, connector_id: str, chain_id: Optional[int]) -> None:
        if connector_id != self._active_id:
            return
        if chain_id is None:
            self._set_active(None)
            return
        self.events.emit("chainChanged", chain_id)

    def _set_active(self, connector_id: Optional[str]) -> None:
        if connector_id == self._active_id:
            return
        logging.info(f"Active connector: {self._active_id} -> {connector_id}")
        self._active_id = connector_id
        account = self.get_account()
        self.events.emit("connectorChanged", connector_id)
        self.events.emit("accountsChanged", [account.address] if account else [])
        self.events.emit("chainChanged", account.chain_id if account else None)
