from eth_account import Account

from walletsync.providers import InternalKeyring


def test_add_key_accepts_missing_prefix():
    account = Account.create()
    ring = InternalKeyring()

    address = ring.add_key(56, account.key.hex().removeprefix("0x"))

    assert address == account.address
    assert ring.address_for(56) == account.address
    assert ring.chain_ids() == [56]


def test_signer_for_checks_address():
    account = Account.create()
    ring = InternalKeyring()
    ring.add_account(137, account)

    assert ring.signer_for(137).address == account.address
    assert ring.signer_for(137, account.address.lower()) is not None
    assert ring.signer_for(137, "0x" + "00" * 20) is None
    assert ring.signer_for(56) is None

    ring.remove(137)
    assert ring.address_for(137) is None
