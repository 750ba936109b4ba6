import pytest

from walletsync.connection import ConnectorManager
from walletsync.events import EventEmitter
from walletsync.providers import BrowserWalletProvider
from walletsync.providers.base import PROVIDER_EVENTS
from walletsync.wallet_manager import UnifiedAccount, WalletConnectionBridge, WalletType

from conftest import ADDR_A, ADDR_B, EventLog


@pytest.fixture
def browser(account_store):
    return BrowserWalletProvider(events=EventEmitter(PROVIDER_EVENTS, account_store.queue))


@pytest.fixture
def library(internal, browser, account_store):
    return ConnectorManager([internal, browser], queue=account_store.queue)


@pytest.fixture
def bridge(library, internal):
    bridge = WalletConnectionBridge(library, internal)
    yield bridge
    bridge.close()


@pytest.fixture
def views(bridge):
    log = []
    bridge.on_change(log.append)
    return log


def test_starts_empty(bridge):
    assert bridge.get_unified_account() == UnifiedAccount()


@pytest.mark.asyncio
async def test_use_internal_publishes_single_view(bridge, views, keyring):
    view = await bridge.use_internal(3888)

    expected = UnifiedAccount(keyring.address_for(3888), 3888, WalletType.INTERNAL)
    assert view == expected
    assert views == [expected]
    assert bridge.internal_is_active()


@pytest.mark.asyncio
async def test_internal_chain_switch_follows_when_internal_active(bridge, internal, views, keyring):
    await bridge.use_internal(3888)
    internal.request_connect(56)

    assert bridge.get_unified_account() == UnifiedAccount(
        keyring.address_for(56), 56, WalletType.INTERNAL
    )


@pytest.mark.asyncio
async def test_external_ignored_while_internal_connector_active(bridge, browser, views):
    await bridge.use_internal(3888)
    views.clear()

    browser.report_connect(ADDR_B, 56)

    assert views == []
    assert bridge.get_unified_account().wallet_type == WalletType.INTERNAL


@pytest.mark.asyncio
async def test_activating_external_takes_precedence(bridge, library, browser, internal, views):
    await bridge.use_internal(3888)
    browser.report_connect(ADDR_B, 56)

    library.activate(browser.connector_id)

    assert bridge.get_unified_account() == UnifiedAccount(ADDR_B, 56, WalletType.EXTERNAL)

    views.clear()
    internal.request_connect(137, ADDR_A)
    assert views == []
    assert bridge.get_unified_account().wallet_type == WalletType.EXTERNAL


@pytest.mark.asyncio
async def test_external_chain_change_propagates(bridge, library, browser, views):
    browser.report_connect(ADDR_B, 56)
    await bridge.use_external(browser.connector_id)

    browser.report_chain(137)

    assert views[-1] == UnifiedAccount(ADDR_B, 137, WalletType.EXTERNAL)


@pytest.mark.asyncio
async def test_external_disconnect_falls_back_to_internal(bridge, library, browser, internal, keyring):
    internal.request_connect(3888)
    browser.report_connect(ADDR_B, 56)
    library.activate(browser.connector_id)

    browser.report_disconnect()

    assert library.active_connector_id is None
    assert bridge.get_unified_account() == UnifiedAccount(
        keyring.address_for(3888), 3888, WalletType.INTERNAL
    )


@pytest.mark.asyncio
async def test_view_is_stored_before_handlers_run(bridge, keyring):
    seen = []
    bridge.on_change(lambda view: seen.append(bridge.get_unified_account() == view))

    await bridge.use_internal(3888)

    assert seen == [True]


@pytest.mark.asyncio
async def test_connector_switch_from_handler_waits_for_dispatch(bridge, library, browser, internal, keyring):
    await bridge.use_internal(3888)
    browser.report_connect(ADDR_B, 56)

    def prefer_browser(view):
        if view.wallet_type == WalletType.INTERNAL:
            library.activate(browser.connector_id)

    seen = []
    bridge.on_change(prefer_browser)
    bridge.on_change(lambda view: seen.append((view, bridge.get_unified_account() == view)))

    internal.request_connect(56)

    assert seen == [
        (UnifiedAccount(keyring.address_for(56), 56, WalletType.INTERNAL), True),
        (UnifiedAccount(ADDR_B, 56, WalletType.EXTERNAL), True),
    ]
    assert bridge.get_unified_account() == seen[-1][0]
    assert library.active_connector_id == browser.connector_id


@pytest.mark.asyncio
async def test_disconnect_clears_internal_connector(bridge, library, views):
    await bridge.use_internal(3888)

    await bridge.disconnect()

    assert library.active_connector_id is None
    assert bridge.get_unified_account() == UnifiedAccount()


def test_connector_manager_library_events(library, browser):
    events = EventLog(library, ("connectorChanged", "accountsChanged", "chainChanged"))
    browser.report_connect(ADDR_A, 56)
    assert events.entries == []

    library.activate(browser.connector_id)

    assert events.entries == [
        ("connectorChanged", "injected"),
        ("accountsChanged", [ADDR_A]),
        ("chainChanged", 56),
    ]


def test_connector_manager_rejects_unknown_and_duplicate(library, browser):
    with pytest.raises(ValueError):
        library.activate("walletconnect")
    with pytest.raises(ValueError):
        library.register(browser)
