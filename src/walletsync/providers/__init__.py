"""Wallet provider implementations."""
from .base import WalletInfo, WalletProvider
from .browser_provider import BrowserWalletProvider
from .internal_provider import InternalWalletProvider, ProviderState
from .keyring import InternalKeyring

__all__ = [
    "WalletInfo",
    "WalletProvider",
    "BrowserWalletProvider",
    "InternalWalletProvider",
    "InternalKeyring",
    "ProviderState",
]
