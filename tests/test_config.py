import pytest

from walletsync.config import WalletSyncConfig


def test_defaults():
    config = WalletSyncConfig.from_env({})
    assert config.state_file == "~/.walletsync/transfers.json"
    assert config.default_chain_id == 3888
    assert config.reconcile_timeout == 1800
    assert config.reconcile_max_polls is None
    assert config.relay_api_url is None
    assert config.rpc_urls == {}


def test_reads_environment():
    config = WalletSyncConfig.from_env(
        {
            "WALLETSYNC_STATE_FILE": "/tmp/t.json",
            "WALLETSYNC_RPC_URLS": "56=https://bsc.example, 137=https://polygon.example",
            "WALLETSYNC_RELAY_API_URL": "https://relay.example",
            "WALLETSYNC_INTERNAL_KEYS": "3888=0xabc",
            "WALLETSYNC_DEFAULT_CHAIN": "56",
            "WALLETSYNC_POLL_BACKOFF": "1.5",
            "WALLETSYNC_RECONCILE_MAX_POLLS": "40",
            "WALLETSYNC_LOG_LEVEL": "debug",
        }
    )
    assert config.state_file == "/tmp/t.json"
    assert config.rpc_urls == {56: "https://bsc.example", 137: "https://polygon.example"}
    assert config.relay_api_url == "https://relay.example"
    assert config.internal_keys == {3888: "0xabc"}
    assert config.default_chain_id == 56
    assert config.poll_backoff == 1.5
    assert config.reconcile_max_polls == 40
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"WALLETSYNC_POLL_INTERVAL": "soon"},
        {"WALLETSYNC_DEFAULT_CHAIN": "kaly"},
        {"WALLETSYNC_RPC_URLS": "56"},
        {"WALLETSYNC_RPC_URLS": "bsc=https://bsc.example"},
    ],
)
def test_malformed_values_raise(env):
    with pytest.raises(ValueError):
        WalletSyncConfig.from_env(env)


def test_repr_hides_private_keys():
    config = WalletSyncConfig(internal_keys={3888: "0xsecret"})
    assert "0xsecret" not in repr(config)
    assert "3888" in repr(config)
