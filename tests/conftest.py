import asyncio
from typing import Dict, List, Optional, Tuple

import pytest
from eth_account import Account
from web3 import Web3

from walletsync.accounts import WalletAccountStore
from walletsync.chains import ChainRegistry
from walletsync.events import MutationQueue
from walletsync.providers import InternalKeyring, InternalWalletProvider
from walletsync.rpc import ChainRpc, Receipt, ReceiptStatus
from walletsync.transfers import RelayReport, RelayStatus, RelayTracker

ADDR_A = Web3.to_checksum_address("0x" + "aa" * 20)
ADDR_B = Web3.to_checksum_address("0x" + "bb" * 20)
TOKEN = Web3.to_checksum_address("0x" + "cc" * 20)
SOURCE_TX = "0x" + "11" * 32
DEST_TX = "0x" + "22" * 32
MESSAGE_ID = "0x" + "33" * 32


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRpc(ChainRpc):
    """Receipts keyed by (chain_id, tx_hash); values may be exceptions."""

    def __init__(self):
        self.receipts: Dict[Tuple[int, str], object] = {}
        self.calls: List[Tuple[int, str]] = []
        self.submitted: List[Tuple[int, dict, str]] = []
        self.gate: Optional[asyncio.Event] = None

    def set_receipt(self, chain_id: int, tx_hash: str, value) -> None:
        self.receipts[(chain_id, tx_hash.lower())] = value

    async def submit(self, chain_id, transaction, signer) -> str:
        self.submitted.append((chain_id, transaction, signer.address))
        return SOURCE_TX

    async def get_receipt(self, chain_id, tx_hash):
        self.calls.append((chain_id, tx_hash))
        if self.gate is not None:
            await self.gate.wait()
        value = self.receipts.get((chain_id, tx_hash.lower()))
        if isinstance(value, Exception):
            raise value
        return value


class FakeRelay(RelayTracker):
    def __init__(self, report: Optional[RelayReport] = None):
        self.report = report or RelayReport(RelayStatus.PENDING)
        self.calls = 0

    async def lookup(self, transfer) -> RelayReport:
        self.calls += 1
        return self.report


def success(block: int = 100, logs=None) -> Receipt:
    return Receipt(status=ReceiptStatus.SUCCESS, block_number=block, logs=logs or [])


def reverted(block: int = 100, reason: Optional[str] = None) -> Receipt:
    return Receipt(status=ReceiptStatus.REVERTED, block_number=block, revert_reason=reason)


class EventLog:
    """Records provider-style events in dispatch order."""

    def __init__(self, source, events=("connect", "disconnect", "accountsChanged", "chainChanged")):
        self.entries: List[tuple] = []
        for event in events:
            source.on(event, self._recorder(event))

    def _recorder(self, event):
        def record(*args):
            self.entries.append((event,) + args)

        return record

    def names(self) -> List[str]:
        return [entry[0] for entry in self.entries]

    def clear(self) -> None:
        self.entries.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return ChainRegistry()


@pytest.fixture
def account_store(registry, clock):
    return WalletAccountStore(registry, MutationQueue(), clock)


@pytest.fixture
def keyring():
    ring = InternalKeyring()
    for chain_id in (3888, 56, 137, 42161):
        ring.add_account(chain_id, Account.create())
    return ring


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def internal(account_store, keyring, rpc):
    provider = InternalWalletProvider(account_store, keyring, rpc)
    yield provider
    provider.close()
