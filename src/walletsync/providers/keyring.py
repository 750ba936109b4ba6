"""Signing keys held by the internal wallet, one account per chain."""
import logging
from typing import Dict, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount


class InternalKeyring:
    """
    In-memory mapping of chain id to a local signing account.

    Keys are only held here; where they come from and how they are stored
    at rest is up to the caller.
    """

    def __init__(self):
        self._accounts: Dict[int, LocalAccount] = {}

    def add_key(self, chain_id: int, private_key: str) -> str:
        """
        Register a private key for a chain.

        Parameters
        ----------
        chain_id : int
            Chain the key is used on.
        private_key : str
            Hex private key, with or without 0x prefix.

        Returns
        -------
        str
            Checksum address of the key.
        """
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        account = Account.from_key(private_key)
        self._accounts[chain_id] = account
        logging.info(f"Internal key registered for chain {chain_id}: {account.address}")
        return account.address

    def add_account(self, chain_id: int, account: LocalAccount) -> str:
        self._accounts[chain_id] = account
        return account.address

    def remove(self, chain_id: int) -> None:
        self._accounts.pop(chain_id, None)

    def address_for(self, chain_id: int) -> Optional[str]:
        account = self._accounts.get(chain_id)
        return account.address if account else None

    def signer_for(self, chain_id: int, address: Optional[str] = None) -> Optional[LocalAccount]:
        account = self._accounts.get(chain_id)
        if account is None:
            return None
        if address is not None and account.address.lower() != address.lower():
            return None
        return account

    def chain_ids(self) -> List[int]:
        return sorted(self._accounts)
