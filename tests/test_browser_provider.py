import pytest

from walletsync.errors import NotConnected, UnsupportedMethod
from walletsync.providers import BrowserWalletProvider

from conftest import ADDR_A, ADDR_B, EventLog


@pytest.fixture
def browser():
    return BrowserWalletProvider()


def test_report_connect_emits_connect_accounts_chain(browser):
    events = EventLog(browser)

    info = browser.report_connect(ADDR_A.lower(), 56)

    assert info.address == ADDR_A
    assert events.names() == ["connect", "accountsChanged", "chainChanged"]
    assert events.entries[-1] == ("chainChanged", 56)


def test_account_swap_goes_through_disconnect(browser):
    browser.report_connect(ADDR_A, 56)
    events = EventLog(browser)

    browser.report_accounts([ADDR_B])

    assert events.names() == ["disconnect", "accountsChanged", "connect", "accountsChanged"]
    assert browser.get_account().address == ADDR_B


def test_same_account_new_chain_only_changes_chain(browser):
    browser.report_connect(ADDR_A, 56)
    events = EventLog(browser)

    browser.report_connect(ADDR_A, 137)

    assert events.entries == [("chainChanged", 137)]


def test_empty_accounts_means_disconnect(browser):
    browser.report_connect(ADDR_A, 56)
    events = EventLog(browser)

    browser.report_accounts([])

    assert events.entries == [
        ("disconnect", 56),
        ("accountsChanged", []),
        ("chainChanged", None),
    ]
    assert browser.get_account() is None


@pytest.mark.asyncio
async def test_connect_requires_browser_report(browser):
    with pytest.raises(NotConnected):
        await browser.connect()
    browser.report_connect(ADDR_A, 56)
    assert (await browser.connect()).address == ADDR_A


@pytest.mark.asyncio
async def test_signing_must_happen_in_browser(browser):
    browser.report_connect(ADDR_A, 56)
    with pytest.raises(UnsupportedMethod) as exc_info:
        await browser.request("personal_sign", ["hi", ADDR_A])
    assert "browser" in str(exc_info.value)
    assert await browser.request("eth_accounts") == [ADDR_A]
    assert await browser.request("eth_chainId") == "0x38"
