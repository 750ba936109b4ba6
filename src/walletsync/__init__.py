"""Multi-chain wallet connection state and bridge transfer tracking."""
from walletsync.accounts import AccountChange, WalletAccount, WalletAccountStore
from walletsync.chains import DEFAULT_CHAINS, ChainDescriptor, ChainRegistry
from walletsync.config import WalletSyncConfig
from walletsync.connection import ConnectionLibrary, ConnectorManager
from walletsync.errors import (
    InvalidAddress,
    InvalidChain,
    NotConnected,
    OnChainRevert,
    ReceiptLookupFailure,
    ReconciliationTimeout,
    TransferNotFound,
    UnsupportedMethod,
    WalletSyncError,
)
from walletsync.events import EventEmitter, MutationQueue
from walletsync.providers import (
    BrowserWalletProvider,
    InternalKeyring,
    InternalWalletProvider,
    ProviderState,
    WalletInfo,
    WalletProvider,
)
from walletsync.rpc import ChainRpc, Receipt, ReceiptStatus, Web3ChainRpc
from walletsync.transfers import (
    BridgeTransfer,
    FailureReason,
    PollPolicy,
    TransferReconciler,
    TransferRequest,
    TransferStatus,
    TransferStore,
)
from walletsync.wallet_manager import UnifiedAccount, WalletConnectionBridge, WalletType

__version__ = "0.1.0"
