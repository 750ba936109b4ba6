"""Chain RPC capability: submit transactions and look up receipts."""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TransactionNotFound

from walletsync.chains import ChainRegistry
from walletsync.errors import InvalidChain, ReceiptLookupFailure


class ReceiptStatus(str, Enum):
    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass(frozen=True)
class Receipt:
    """Mined transaction outcome."""

    status: ReceiptStatus
    block_number: int
    logs: List[Dict[str, Any]] = field(default_factory=list)
    tx_hash: Optional[str] = None
    revert_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ReceiptStatus.SUCCESS


class ChainRpc(ABC):
    """Opaque chain access used by providers and the transfer store."""

    @abstractmethod
    async def submit(
        self, chain_id: int, transaction: Dict[str, Any], signer: LocalAccount
    ) -> str:
        """
        Sign and broadcast a transaction.

        Parameters
        ----------
        chain_id : int
            Target chain.
        transaction : Dict[str, Any]
            Transaction request; missing nonce, gas and fee fields are filled in.
        signer : LocalAccount
            Account that signs the transaction.

        Returns
        -------
        str
            Transaction hash.
        """
        pass

    @abstractmethod
    async def get_receipt(self, chain_id: int, tx_hash: str) -> Optional[Receipt]:
        """
        Look up a receipt.

        Returns None while the transaction is not yet mined. Transport
        failures raise ReceiptLookupFailure.
        """
        pass


def _hex(value) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def _log_to_dict(log) -> Dict[str, Any]:
    return {
        "address": log.get("address"),
        "topics": [_hex(topic) for topic in log.get("topics", [])],
        "data": _hex(log.get("data", b"")),
    }


class Web3ChainRpc(ChainRpc):
    """
    ChainRpc backed by one web3 HTTP client per chain.

    Parameters
    ----------
    registry : ChainRegistry
        Supported chains; their ``rpc_url`` is used unless overridden.
    rpc_urls : Optional[Dict[int, str]]
        Per-chain endpoint overrides.
    timeout : float
        HTTP request timeout in seconds.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        rpc_urls: Optional[Dict[int, str]] = None,
        timeout: float = 10.0,
    ):
        self.registry = registry
        self.rpc_urls = dict(rpc_urls or {})
        self.timeout = timeout
        self._clients: Dict[int, Web3] = {}

    def _client(self, chain_id: int) -> Web3:
        if chain_id in self._clients:
            return self._clients[chain_id]

        chain = self.registry.require(chain_id)
        url = self.rpc_urls.get(chain_id) or chain.rpc_url
        if not url:
            raise InvalidChain(chain_id)
        w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": self.timeout}))
        self._clients[chain_id] = w3
        logging.info(f"RPC client created for chain {chain_id}: {url}")
        return w3

    async def submit(
        self, chain_id: int, transaction: Dict[str, Any], signer: LocalAccount
    ) -> str:
        w3 = self._client(chain_id)
        loop = asyncio.get_running_loop()

        def _build_and_send_tx():
            tx = dict(transaction)
            tx.pop("from", None)
            if tx.get("to"):
                tx["to"] = w3.to_checksum_address(tx["to"])
            tx.setdefault("value", 0)
            tx.setdefault("chainId", chain_id)
            if "nonce" not in tx:
                tx["nonce"] = w3.eth.get_transaction_count(signer.address)
            if "gas" not in tx:
                tx["gas"] = w3.eth.estimate_gas({**tx, "from": signer.address})
            if "gasPrice" not in tx and "maxFeePerGas" not in tx:
                tx["gasPrice"] = w3.eth.gas_price

            signed_txn = signer.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed_txn.raw_transaction)
            return Web3.to_hex(tx_hash)

        tx_hash = await loop.run_in_executor(None, _build_and_send_tx)
        logging.info(f"Transaction submitted on chain {chain_id}: {tx_hash}")
        return tx_hash

    async def get_receipt(self, chain_id: int, tx_hash: str) -> Optional[Receipt]:
        w3 = self._client(chain_id)
        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(None, w3.eth.get_transaction_receipt, tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise ReceiptLookupFailure(chain_id, tx_hash, str(e)) from e

        status = ReceiptStatus.SUCCESS if raw.get("status") == 1 else ReceiptStatus.REVERTED
        return Receipt(
            status=status,
            block_number=raw.get("blockNumber", 0),
            logs=[_log_to_dict(log) for log in raw.get("logs", [])],
            tx_hash=tx_hash,
        )
