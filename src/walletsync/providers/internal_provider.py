"""In-application wallet that behaves like an injected browser wallet."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from eth_account.messages import encode_defunct
from web3 import Web3

from walletsync.accounts import (
    AccountChange,
    AccountChangeKind,
    WalletAccount,
    WalletAccountStore,
    normalize_address,
)
from walletsync.errors import InvalidChain, NotConnected, UnsupportedMethod
from walletsync.events import EventEmitter
from walletsync.rpc import ChainRpc

from .base import PROVIDER_EVENTS, WalletInfo, WalletProvider
from .keyring import InternalKeyring


def _parse_chain_id(value: Any) -> int:
    """Hex string as sent by dapps ("0xf30"), or a plain integer."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16)
        except ValueError:
            pass
    raise InvalidChain(value)


@dataclass(frozen=True)
class ProviderState:
    """Snapshot of the internal provider."""

    available_wallets: Tuple[WalletAccount, ...]
    active_chain_id: Optional[int] = None

    @property
    def active_wallet(self) -> Optional[WalletAccount]:
        for wallet in self.available_wallets:
            if wallet.chain_id == self.active_chain_id:
                return wallet
        return None


class InternalWalletProvider(WalletProvider):
    """
    Internal wallet provider holding one account per chain.

    Account records live in the WalletAccountStore; this provider only owns
    the active chain and translates store changes into the connect,
    disconnect, accountsChanged and chainChanged events an injected wallet
    would emit.

    Parameters
    ----------
    store : WalletAccountStore
        Account records, shared with anything else that reads them.
    keyring : InternalKeyring
        Signing accounts per chain.
    rpc : Optional[ChainRpc]
        Chain access for ``eth_sendTransaction``.
    default_chain_id : int
        Chain used when ``connect`` names none.
    connector_id : str
        Id under which the connection library knows this provider.
    """

    def __init__(
        self,
        store: WalletAccountStore,
        keyring: InternalKeyring,
        rpc: Optional[ChainRpc] = None,
        default_chain_id: int = 3888,
        connector_id: str = "walletsync-internal",
    ):
        super().__init__(EventEmitter(PROVIDER_EVENTS, store.queue))
        self.store = store
        self.keyring = keyring
        self.rpc = rpc
        self.default_chain_id = default_chain_id
        self.connector_id = connector_id
        self._active_chain_id: Optional[int] = None
        store.add_listener(self._on_account_change)

    def close(self) -> None:
        self.store.remove_listener(self._on_account_change)

    def get_state(self) -> ProviderState:
        wallets = tuple(self.store.list_connected())
        active = self._active_chain_id
        if active is not None and self.store.get(active) is None:
            active = None
        return ProviderState(available_wallets=wallets, active_chain_id=active)

    def _visible_addresses(self) -> List[str]:
        if self._active_chain_id is None:
            return []
        account = self.store.get(self._active_chain_id)
        return [account.address] if account else []

    def _on_account_change(self, change: AccountChange) -> None:
        chain_id = change.chain_id
        if change.kind == AccountChangeKind.CONNECTED:
            self.events.emit("connect", change.account)
            if chain_id == self._active_chain_id:
                self.events.emit("accountsChanged", [change.account.address])
            return

        self.events.emit("disconnect", chain_id)
        if chain_id != self._active_chain_id:
            return
        if change.replacing:
            # active chain keeps its id; the new account follows immediately
            self.events.emit("accountsChanged", [])
            return

        remaining = sorted(account.chain_id for account in self.store.list_connected())
        self._active_chain_id = remaining[0] if remaining else None
        logging.info(f"Internal wallet active chain: {chain_id} -> {self._active_chain_id}")
        self.events.emit("accountsChanged", self._visible_addresses())
        self.events.emit("chainChanged", self._active_chain_id)

    def request_connect(
        self, chain_id: Optional[int] = None, address: Optional[str] = None
    ) -> Optional[WalletAccount]:
        """
        Connect the internal wallet on a chain and make that chain active.

        Parameters
        ----------
        chain_id : Optional[int]
            Chain to connect; the default chain when None.
        address : Optional[str]
            Account address; the keyring's address for the chain when None.

        Returns
        -------
        Optional[WalletAccount]
            The connected account, or None when queued from inside a handler.
        """
        if chain_id is None:
            chain_id = self.default_chain_id
        self.store.registry.require(chain_id)
        if address is None:
            address = self.keyring.address_for(chain_id)
            if address is None:
                raise NotConnected(f"No internal account available for chain {chain_id}", chain_id)
        checksum = normalize_address(address)
        return self.store.queue.run(self._request_connect, chain_id, checksum)

    def _request_connect(self, chain_id: int, address: str) -> WalletAccount:
        previous = self._active_chain_id
        current = self.store.get(chain_id)
        if current is not None and current.address == address:
            if previous == chain_id:
                return current
            account = current
            self.events.emit("connect", account)
        else:
            account = self.store.connect(chain_id, address)

        if previous != chain_id:
            self._active_chain_id = chain_id
            logging.info(f"Internal wallet active chain: {previous} -> {chain_id}")
            self.events.emit("accountsChanged", [account.address])
            if previous is not None:
                self.events.emit("chainChanged", chain_id)
        return account

    def request_disconnect(self, chain_id: int) -> None:
        """Disconnect one chain; a chain without an account is a no-op."""
        self.store.disconnect(chain_id)

    def switch_active_chain(self, chain_id: int) -> None:
        self.store.registry.require(chain_id)
        if self.store.get(chain_id) is None:
            raise NotConnected(f"Internal wallet not connected on chain {chain_id}", chain_id)
        self.store.queue.run(self._switch_active_chain, chain_id)

    def _switch_active_chain(self, chain_id: int) -> None:
        if self.store.get(chain_id) is None:
            raise NotConnected(f"Internal wallet not connected on chain {chain_id}", chain_id)
        if self._active_chain_id == chain_id:
            return
        logging.info(f"Internal wallet switched chain: {self._active_chain_id} -> {chain_id}")
        self._active_chain_id = chain_id
        self.events.emit("chainChanged", chain_id)

    def get_account(self) -> Optional[WalletInfo]:
        wallet = self.get_state().active_wallet
        if wallet is None:
            return None
        return WalletInfo(
            address=wallet.address,
            chain_id=wallet.chain_id,
            provider_name=self.connector_id,
        )

    async def connect(self, chain_id: Optional[int] = None) -> WalletInfo:
        self.request_connect(chain_id)
        info = self.get_account()
        if info is None:
            raise NotConnected("Internal wallet connect did not complete", chain_id)
        return info

    async def disconnect(self) -> None:
        active = self._active_chain_id
        for account in self.store.list_connected():
            if account.chain_id != active:
                self.store.disconnect(account.chain_id)
        if active is not None:
            self.store.disconnect(active)
        logging.info("Internal wallet disconnected")

    def _require_active(self) -> WalletAccount:
        wallet = self.get_state().active_wallet
        if wallet is None:
            raise NotConnected("Internal wallet has no active account")
        return wallet

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        params = list(params or [])

        if method == "eth_accounts":
            return self._visible_addresses()

        if method == "eth_requestAccounts":
            if not self._visible_addresses():
                await self.connect()
            return self._visible_addresses()

        if method == "eth_chainId":
            wallet = self.get_state().active_wallet
            return hex(wallet.chain_id if wallet else self.default_chain_id)

        if method == "wallet_switchEthereumChain":
            if not params or not isinstance(params[0], dict) or "chainId" not in params[0]:
                raise UnsupportedMethod(method, "wallet_switchEthereumChain needs a chainId")
            self.switch_active_chain(_parse_chain_id(params[0]["chainId"]))
            return None

        if method == "personal_sign":
            return await self._personal_sign(params)

        if method == "eth_sendTransaction":
            return await self._send_transaction(params)

        raise UnsupportedMethod(method)

    async def _personal_sign(self, params: List[Any]) -> str:
        if not params:
            raise UnsupportedMethod("personal_sign", "personal_sign needs a message")
        message = params[0]
        address = params[1] if len(params) > 1 else None
        wallet = self._require_active()
        signer = self.keyring.signer_for(wallet.chain_id, address or wallet.address)
        if signer is None:
            raise NotConnected(
                f"No signing key for {address or wallet.address} on chain {wallet.chain_id}",
                wallet.chain_id,
            )

        if isinstance(message, str) and message.startswith("0x"):
            encoded_message = encode_defunct(hexstr=message)
        else:
            encoded_message = encode_defunct(text=message)
        loop = asyncio.get_running_loop()
        signed_message = await loop.run_in_executor(None, signer.sign_message, encoded_message)
        return Web3.to_hex(signed_message.signature)

    async def _send_transaction(self, params: List[Any]) -> str:
        if self.rpc is None:
            raise UnsupportedMethod("eth_sendTransaction", "No chain RPC configured")
        if not params:
            raise UnsupportedMethod("eth_sendTransaction", "eth_sendTransaction needs a transaction")
        wallet = self._require_active()
        transaction = dict(params[0])
        signer = self.keyring.signer_for(wallet.chain_id, transaction.get("from") or wallet.address)
        if signer is None:
            raise NotConnected(f"No signing key on chain {wallet.chain_id}", wallet.chain_id)
        return await self.rpc.submit(wallet.chain_id, transaction, signer)
