"""Static table of supported chains."""
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from walletsync.errors import InvalidChain


@dataclass(frozen=True)
class ChainDescriptor:
    """
    Immutable description of a supported chain.

    Parameters
    ----------
    chain_id : int
        EVM chain id.
    native_symbol : str
        Symbol of the native gas token.
    explorer_base_url : str
        Block explorer root, without trailing slash.
    name : str
        Display name.
    rpc_url : Optional[str]
        Default JSON-RPC endpoint.
    """

    chain_id: int
    native_symbol: str
    explorer_base_url: str
    name: str = ""
    rpc_url: Optional[str] = None

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_base_url.rstrip('/')}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_base_url.rstrip('/')}/address/{address}"


DEFAULT_CHAINS = (
    ChainDescriptor(
        chain_id=3888,
        native_symbol="KLC",
        explorer_base_url="https://kalyscan.io",
        name="KalyChain",
        rpc_url="https://rpc.kalychain.io/rpc",
    ),
    ChainDescriptor(
        chain_id=42161,
        native_symbol="ETH",
        explorer_base_url="https://arbiscan.io",
        name="Arbitrum One",
        rpc_url="https://arb1.arbitrum.io/rpc",
    ),
    ChainDescriptor(
        chain_id=56,
        native_symbol="BNB",
        explorer_base_url="https://bscscan.com",
        name="BNB Smart Chain",
        rpc_url="https://bsc-dataseed.binance.org",
    ),
    ChainDescriptor(
        chain_id=137,
        native_symbol="POL",
        explorer_base_url="https://polygonscan.com",
        name="Polygon",
        rpc_url="https://polygon-rpc.com",
    ),
)


class ChainRegistry:
    """Read-only lookup of chain descriptors by id."""

    def __init__(self, chains: Iterable[ChainDescriptor] = DEFAULT_CHAINS):
        self._chains: Dict[int, ChainDescriptor] = {}
        for chain in chains:
            if chain.chain_id in self._chains:
                raise ValueError(f"Duplicate chain id in registry: {chain.chain_id}")
            self._chains[chain.chain_id] = chain

    def describe(self, chain_id: int) -> Optional[ChainDescriptor]:
        return self._chains.get(chain_id)

    def require(self, chain_id: int) -> ChainDescriptor:
        """Return the descriptor or raise InvalidChain."""
        chain = self._chains.get(chain_id)
        if chain is None:
            raise InvalidChain(chain_id)
        return chain

    def chain_ids(self) -> List[int]:
        return list(self._chains)

    def __contains__(self, chain_id) -> bool:
        return chain_id in self._chains

    def __iter__(self) -> Iterator[ChainDescriptor]:
        return iter(self._chains.values())

    def __len__(self) -> int:
        return len(self._chains)
