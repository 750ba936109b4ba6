import pytest

from walletsync.chains import DEFAULT_CHAINS, ChainDescriptor, ChainRegistry
from walletsync.errors import InvalidChain


def test_default_chains_are_registered(registry):
    assert sorted(registry.chain_ids()) == [56, 137, 3888, 42161]
    kaly = registry.describe(3888)
    assert kaly.native_symbol == "KLC"
    assert kaly.explorer_base_url == "https://kalyscan.io"
    assert len(registry) == len(DEFAULT_CHAINS)


def test_describe_unknown_chain_returns_none(registry):
    assert registry.describe(1) is None
    assert 1 not in registry


def test_require_unknown_chain_raises(registry):
    with pytest.raises(InvalidChain) as exc_info:
        registry.require(999)
    assert exc_info.value.chain_id == 999
    assert exc_info.value.code == 4902


def test_explorer_links():
    chain = ChainDescriptor(56, "BNB", "https://bscscan.com/")
    assert chain.tx_url("0xabc") == "https://bscscan.com/tx/0xabc"
    assert chain.address_url("0xdef") == "https://bscscan.com/address/0xdef"


def test_duplicate_chain_ids_rejected():
    chain = ChainDescriptor(1, "ETH", "https://etherscan.io")
    with pytest.raises(ValueError):
        ChainRegistry([chain, chain])


def test_descriptors_are_immutable(registry):
    with pytest.raises(Exception):
        registry.describe(56).native_symbol = "XXX"
