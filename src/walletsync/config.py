"""Configuration loaded from environment variables."""
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional


def _parse_pairs(raw: Optional[str], name: str) -> Dict[int, str]:
    pairs: Dict[int, str] = {}
    if not raw:
        return pairs
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        if not sep or not value.strip():
            raise ValueError(f"{name}: expected chainId=value, got {item!r}")
        try:
            pairs[int(key.strip())] = value.strip()
        except ValueError:
            raise ValueError(f"{name}: chain id must be an integer, got {key!r}") from None
    return pairs


def _number(env: Mapping[str, str], name: str, default, cast=float):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class WalletSyncConfig:
    """Runtime settings. See ``from_env`` for the variable names."""

    state_file: str = "~/.walletsync/transfers.json"
    rpc_urls: Dict[int, str] = field(default_factory=dict)
    relay_api_url: Optional[str] = None
    internal_keys: Dict[int, str] = field(default_factory=dict)
    default_chain_id: int = 3888
    poll_interval: float = 5.0
    poll_max_interval: float = 60.0
    poll_backoff: float = 2.0
    reconcile_timeout: float = 1800.0
    reconcile_max_polls: Optional[int] = None
    prune_age: float = 7 * 24 * 3600.0
    rpc_timeout: float = 10.0
    log_level: str = "INFO"

    def __repr__(self) -> str:
        keys = ", ".join(str(chain_id) for chain_id in sorted(self.internal_keys))
        return (
            f"WalletSyncConfig(state_file={self.state_file!r}, default_chain_id={self.default_chain_id}, "
            f"relay_api_url={self.relay_api_url!r}, internal_keys=[{keys}])"
        )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "WalletSyncConfig":
        """
        Build the configuration from ``WALLETSYNC_*`` variables.

        Parameters
        ----------
        env : Optional[Mapping[str, str]]
            Variables to read; ``os.environ`` when None.

        Returns
        -------
        WalletSyncConfig
            Settings with defaults for anything unset.
        """
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            state_file=env.get("WALLETSYNC_STATE_FILE") or defaults.state_file,
            rpc_urls=_parse_pairs(env.get("WALLETSYNC_RPC_URLS"), "WALLETSYNC_RPC_URLS"),
            relay_api_url=env.get("WALLETSYNC_RELAY_API_URL") or None,
            internal_keys=_parse_pairs(env.get("WALLETSYNC_INTERNAL_KEYS"), "WALLETSYNC_INTERNAL_KEYS"),
            default_chain_id=_number(env, "WALLETSYNC_DEFAULT_CHAIN", defaults.default_chain_id, int),
            poll_interval=_number(env, "WALLETSYNC_POLL_INTERVAL", defaults.poll_interval),
            poll_max_interval=_number(env, "WALLETSYNC_POLL_MAX_INTERVAL", defaults.poll_max_interval),
            poll_backoff=_number(env, "WALLETSYNC_POLL_BACKOFF", defaults.poll_backoff),
            reconcile_timeout=_number(env, "WALLETSYNC_RECONCILE_TIMEOUT", defaults.reconcile_timeout),
            reconcile_max_polls=_number(env, "WALLETSYNC_RECONCILE_MAX_POLLS", None, int),
            prune_age=_number(env, "WALLETSYNC_PRUNE_AGE", defaults.prune_age),
            rpc_timeout=_number(env, "WALLETSYNC_RPC_TIMEOUT", defaults.rpc_timeout),
            log_level=(env.get("WALLETSYNC_LOG_LEVEL") or defaults.log_level).upper(),
        )
