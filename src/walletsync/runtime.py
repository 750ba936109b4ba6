"""Wires the wallet and transfer components together."""
import logging
import time
from typing import Any, Callable, Dict, Optional

from walletsync.accounts import WalletAccountStore
from walletsync.chains import ChainRegistry
from walletsync.config import WalletSyncConfig
from walletsync.connection import ConnectorManager
from walletsync.events import EventEmitter, MutationQueue
from walletsync.providers import BrowserWalletProvider, InternalKeyring, InternalWalletProvider
from walletsync.providers.base import PROVIDER_EVENTS
from walletsync.rpc import ChainRpc, Web3ChainRpc
from walletsync.transfers import (
    BridgeTransfer,
    HttpRelayTracker,
    JsonTransferRepository,
    PollPolicy,
    RelayTracker,
    TransferReconciler,
    TransferStore,
)
from walletsync.wallet_manager import WalletConnectionBridge


class WalletSyncRuntime:
    """
    One application's worth of wallet and transfer state.

    Built once at start-up with ``from_config`` and torn down with
    ``close``; components receive what they need from here rather than
    reaching for globals.
    """

    def __init__(
        self,
        config: WalletSyncConfig,
        registry: ChainRegistry,
        accounts: WalletAccountStore,
        keyring: InternalKeyring,
        internal: InternalWalletProvider,
        browser: BrowserWalletProvider,
        library: ConnectorManager,
        bridge: WalletConnectionBridge,
        transfers: TransferStore,
        reconciler: TransferReconciler,
    ):
        self.config = config
        self.registry = registry
        self.accounts = accounts
        self.keyring = keyring
        self.internal = internal
        self.browser = browser
        self.library = library
        self.bridge = bridge
        self.transfers = transfers
        self.reconciler = reconciler

    @classmethod
    def from_config(
        cls,
        config: WalletSyncConfig,
        registry: Optional[ChainRegistry] = None,
        rpc: Optional[ChainRpc] = None,
        relay: Optional[RelayTracker] = None,
        repository: Optional[JsonTransferRepository] = None,
        clock: Callable[[], float] = time.time,
    ) -> "WalletSyncRuntime":
        """
        Build a runtime from configuration.

        Parameters
        ----------
        config : WalletSyncConfig
            Settings.
        registry : Optional[ChainRegistry]
            Chain table; the default chains when None.
        rpc : Optional[ChainRpc]
            Chain access; a web3 client per chain when None.
        relay : Optional[RelayTracker]
            Relay evidence; an HTTP tracker when ``relay_api_url`` is set.
        repository : Optional[JsonTransferRepository]
            Transfer persistence; a JSON file at ``state_file`` when None.
        clock : Callable[[], float]
            Time source shared by the stores.
        """
        registry = registry or ChainRegistry()
        registry.require(config.default_chain_id)
        rpc = rpc or Web3ChainRpc(registry, config.rpc_urls, timeout=config.rpc_timeout)
        if relay is None and config.relay_api_url:
            relay = HttpRelayTracker(config.relay_api_url, timeout=config.rpc_timeout)

        keyring = InternalKeyring()
        for chain_id, private_key in config.internal_keys.items():
            registry.require(chain_id)
            keyring.add_key(chain_id, private_key)

        queue = MutationQueue()
        accounts = WalletAccountStore(registry, queue, clock)
        internal = InternalWalletProvider(
            accounts, keyring, rpc, default_chain_id=config.default_chain_id
        )
        browser = BrowserWalletProvider(events=EventEmitter(PROVIDER_EVENTS, queue))
        library = ConnectorManager([internal, browser], queue=queue)
        bridge = WalletConnectionBridge(library, internal)

        policy = PollPolicy(
            initial_interval=config.poll_interval,
            max_interval=config.poll_max_interval,
            backoff=config.poll_backoff,
            timeout=config.reconcile_timeout,
            max_polls=config.reconcile_max_polls,
        )
        transfers = TransferStore(
            registry,
            rpc,
            relay=relay,
            repository=repository or JsonTransferRepository(config.state_file),
            policy=policy,
            clock=clock,
        )
        reconciler = TransferReconciler(transfers, policy, clock)
        logging.info(f"walletsync runtime ready: {config!r}")
        return cls(
            config, registry, accounts, keyring, internal, browser, library, bridge, transfers, reconciler
        )

    def wallet_state(self) -> Dict[str, Any]:
        state = self.internal.get_state()
        external = self.browser.get_account()
        return {
            "unified": self.bridge.get_unified_account().to_dict(),
            "active_connector": self.library.active_connector_id,
            "internal": {
                "active_chain_id": state.active_chain_id,
                "wallets": [
                    {
                        "chain_id": wallet.chain_id,
                        "address": wallet.address,
                        "connected_at": wallet.connected_at,
                    }
                    for wallet in state.available_wallets
                ],
            },
            "external": (
                {"address": external.address, "chain_id": external.chain_id} if external else None
            ),
        }

    def transfer_view(self, transfer: BridgeTransfer) -> Dict[str, Any]:
        """Transfer record plus status text and explorer links."""
        data = transfer.to_dict()
        data["status_message"] = transfer.status.message
        data["is_final"] = transfer.is_final
        source = self.registry.describe(transfer.source_chain_id)
        dest = self.registry.describe(transfer.dest_chain_id)
        data["source_tx_url"] = (
            source.tx_url(transfer.source_tx_hash) if source and transfer.source_tx_hash else None
        )
        data["dest_tx_url"] = (
            dest.tx_url(transfer.dest_tx_hash) if dest and transfer.dest_tx_hash else None
        )
        return data

    async def close(self) -> None:
        await self.reconciler.stop()
        self.bridge.close()
        self.internal.close()
        if isinstance(self.transfers.relay, HttpRelayTracker):
            await self.transfers.relay.aclose()
        logging.info("walletsync runtime closed")
