"""Unified account view over the internal wallet and external connectors."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from walletsync.connection import ConnectionLibrary
from walletsync.events import EventEmitter
from walletsync.providers.base import WalletInfo
from walletsync.providers.internal_provider import InternalWalletProvider


class WalletType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


@dataclass(frozen=True)
class UnifiedAccount:
    """Account and chain the rest of the application should use."""

    address: Optional[str] = None
    chain_id: Optional[int] = None
    wallet_type: Optional[WalletType] = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "chain_id": self.chain_id,
            "wallet_type": self.wallet_type.value if self.wallet_type else None,
        }


UnifiedListener = Callable[[UnifiedAccount], None]


class WalletConnectionBridge:
    """
    Reconciles the internal wallet with the connection library.

    The internal wallet is authoritative while it is the library's active
    connector. Otherwise an account reported by the library wins, and the
    internal wallet's own state is shown only when the library has none.
    Updates from the source that is not authoritative are dropped.

    Change handlers run on the library's mutation queue: a connector
    switch requested from a handler waits until every handler has seen the
    current view.

    Parameters
    ----------
    library : ConnectionLibrary
        External wallet-connection library.
    internal : InternalWalletProvider
        Internal wallet provider, registered in ``library`` as a connector.
    """

    def __init__(self, library: ConnectionLibrary, internal: InternalWalletProvider):
        self.library = library
        self.internal = internal
        self._events = EventEmitter(("change",), library.queue)
        self._view = self._compute()

        internal.on("accountsChanged", self._on_internal_event)
        internal.on("chainChanged", self._on_internal_event)
        library.on("accountsChanged", self._on_external_event)
        library.on("chainChanged", self._on_external_event)
        library.on("connectorChanged", self._on_connector_changed)

    def close(self) -> None:
        self.internal.off("accountsChanged", self._on_internal_event)
        self.internal.off("chainChanged", self._on_internal_event)
        self.library.off("accountsChanged", self._on_external_event)
        self.library.off("chainChanged", self._on_external_event)
        self.library.off("connectorChanged", self._on_connector_changed)
        self._events.clear()

    def on_change(self, handler: UnifiedListener) -> None:
        """Call ``handler(view)`` each time the unified account changes."""
        self._events.on("change", handler)

    def off_change(self, handler: UnifiedListener) -> None:
        self._events.off("change", handler)

    def get_unified_account(self) -> UnifiedAccount:
        """The current view; already updated when change handlers run."""
        return self._view

    def internal_is_active(self) -> bool:
        return self.library.active_connector_id == self.internal.connector_id

    def _external_is_authoritative(self) -> bool:
        return not self.internal_is_active() and self.library.get_account() is not None

    def _compute(self) -> UnifiedAccount:
        if self._external_is_authoritative():
            return self._from_info(self.library.get_account(), WalletType.EXTERNAL)
        return self._from_info(self.internal.get_account(), WalletType.INTERNAL)

    @staticmethod
    def _from_info(info: Optional[WalletInfo], wallet_type: WalletType) -> UnifiedAccount:
        if info is None:
            return UnifiedAccount()
        return UnifiedAccount(address=info.address, chain_id=info.chain_id, wallet_type=wallet_type)

    def _on_internal_event(self, *args) -> None:
        if self._external_is_authoritative():
            return
        self._refresh()

    def _on_external_event(self, *args) -> None:
        if self.internal_is_active():
            return
        self._refresh()

    def _on_connector_changed(self, connector_id: Optional[str]) -> None:
        self._refresh()

    def _refresh(self) -> None:
        view = self._compute()
        if view == self._view:
            return
        self._view = view
        logging.info(
            f"Unified account: {view.address} on chain {view.chain_id} "
            f"({view.wallet_type.value if view.wallet_type else 'none'})"
        )
        self._events.emit("change", view)

    async def use_internal(self, chain_id: Optional[int] = None) -> UnifiedAccount:
        """
        Connect the internal wallet and make it the active connector.

        Parameters
        ----------
        chain_id : Optional[int]
            Chain to connect on; the internal wallet's default when None.

        Returns
        -------
        UnifiedAccount
            The view after the switch.
        """
        await self.library.connect(self.internal.connector_id, chain_id)
        return self._view

    async def use_external(self, connector_id: str, chain_id: Optional[int] = None) -> UnifiedAccount:
        await self.library.connect(connector_id, chain_id)
        return self._view

    async def disconnect(self) -> None:
        """Disconnect whichever source is authoritative."""
        if self.library.active_connector_id is not None:
            await self.library.disconnect()
        elif self.internal.get_account() is not None:
            await self.internal.disconnect()
