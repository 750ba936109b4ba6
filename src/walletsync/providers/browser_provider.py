"""External browser wallet provider for wallets that sign in the browser."""
import logging
from typing import Any, List, Optional

from walletsync.accounts import normalize_address
from walletsync.errors import NotConnected, UnsupportedMethod
from walletsync.events import EventEmitter

from .base import PROVIDER_EVENTS, WalletInfo, WalletProvider

_BROWSER_ONLY = ("personal_sign", "eth_sign", "eth_signTypedData_v4", "eth_sendTransaction")


class BrowserWalletProvider(WalletProvider):
    """
    Browser wallet provider (MetaMask, WalletConnect and similar).

    Connection and signing happen in the user's browser. The browser
    reports what the extension did and this provider re-emits it with the
    same event shape as the internal wallet, including the disconnect that
    precedes an account swap.
    """

    def __init__(self, connector_id: str = "injected", events: Optional[EventEmitter] = None):
        super().__init__(events or EventEmitter(PROVIDER_EVENTS))
        self.connector_id = connector_id
        self.wallet_info: Optional[WalletInfo] = None

    def get_account(self) -> Optional[WalletInfo]:
        return self.wallet_info

    def report_connect(self, address: str, chain_id: int) -> WalletInfo:
        """
        Record a connection made in the browser.

        Parameters
        ----------
        address : str
            Address the extension exposed.
        chain_id : int
            Chain the extension is on.
        """
        address = normalize_address(address)
        previous = self.wallet_info
        if previous is not None and previous.address == address:
            if previous.chain_id != chain_id:
                self.report_chain(chain_id)
            return self.wallet_info

        if previous is not None:
            self.wallet_info = None
            self.events.emit("disconnect", previous.chain_id)
            self.events.emit("accountsChanged", [])

        self.wallet_info = WalletInfo(
            address=address, chain_id=chain_id, provider_name=self.connector_id
        )
        logging.info(f"Browser wallet connected: {address} on chain {chain_id}")
        self.events.emit("connect", self.wallet_info)
        self.events.emit("accountsChanged", [address])
        if previous is None or previous.chain_id != chain_id:
            self.events.emit("chainChanged", chain_id)
        return self.wallet_info

    def report_accounts(self, accounts: List[str]) -> None:
        """Apply an ``accountsChanged`` report from the extension."""
        if not accounts:
            self.report_disconnect()
            return
        if self.wallet_info is None:
            raise NotConnected("Browser reported accounts before a chain was known")
        self.report_connect(accounts[0], self.wallet_info.chain_id)

    def report_chain(self, chain_id: int) -> None:
        if self.wallet_info is None or self.wallet_info.chain_id == chain_id:
            return
        self.wallet_info = WalletInfo(
            address=self.wallet_info.address,
            chain_id=chain_id,
            provider_name=self.connector_id,
        )
        logging.info(f"Browser wallet chain changed: {chain_id}")
        self.events.emit("chainChanged", chain_id)

    def report_disconnect(self) -> None:
        previous = self.wallet_info
        if previous is None:
            return
        self.wallet_info = None
        logging.info(f"Browser wallet disconnected: {previous.address}")
        self.events.emit("disconnect", previous.chain_id)
        self.events.emit("accountsChanged", [])
        self.events.emit("chainChanged", None)

    async def connect(self, chain_id: Optional[int] = None) -> WalletInfo:
        """
        Connect is handled in the browser.
        This method returns the reported wallet info if available.
        """
        if not self.wallet_info:
            raise NotConnected("Browser wallet not connected. Connection must happen in browser.")
        if chain_id is not None and chain_id != self.wallet_info.chain_id:
            raise NotConnected(
                f"Browser wallet is on chain {self.wallet_info.chain_id}, switch it in the browser",
                chain_id,
            )
        return self.wallet_info

    async def disconnect(self) -> None:
        self.report_disconnect()

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if method == "eth_accounts":
            return [self.wallet_info.address] if self.wallet_info else []
        if method == "eth_chainId":
            if not self.wallet_info:
                raise NotConnected("Browser wallet not connected")
            return hex(self.wallet_info.chain_id)
        if method in _BROWSER_ONLY:
            raise UnsupportedMethod(
                method, f"{method} must happen in the browser wallet UI"
            )
        raise UnsupportedMethod(method)
