"""Supported chains, tokens and the farming pair."""

from dataclasses import dataclass
from decimal import Decimal

NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"

# Minimal ERC20 ABI for balance reads
ERC20_BALANCE_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    }
]


@dataclass(frozen=True)
class ChainConfig:
    """Static description of a supported network."""

    key: str
    chain_id: int
    name: str
    native_symbol: str


@dataclass(frozen=True)
class TokenConfig:
    """ERC20 or native token on a supported chain."""

    symbol: str
    name: str
    address: str
    chain: str
    decimals: int = 18
    is_native: bool = False

    def to_units(self, raw: int) -> Decimal:
        """Convert a raw integer amount into token units."""
        return Decimal(raw) / (Decimal(10) ** self.decimals)


POLYGON = ChainConfig(
    key="polygon",
    chain_id=137,
    name="Polygon",
    native_symbol="MATIC",
)

GNOSIS = ChainConfig(
    key="gnosis",
    chain_id=100,
    name="Gnosis",
    native_symbol="xDAI",
)

CHAINS: dict[str, ChainConfig] = {POLYGON.key: POLYGON, GNOSIS.key: GNOSIS}

EURE = TokenConfig(
    symbol="EURe",
    name="Monerium EUR emoney",
    address="0x18ec0A6E18E5bc3784fDd3a3634b31245ab704F6",
    chain=POLYGON.key,
)

LP_EURE = TokenConfig(
    symbol="LP-EURe",
    name="EURe Liquidity Provider Token",
    address="0xedbc7449a9b594ca4e053d9737ec5dc4cbccbfb2",
    chain=GNOSIS.key,
)

MATIC = TokenConfig(
    symbol="MATIC",
    name="Polygon",
    address=NATIVE_TOKEN_ADDRESS,
    chain=POLYGON.key,
    is_native=True,
)

XDAI = TokenConfig(
    symbol="xDAI",
    name="xDAI",
    address=NATIVE_TOKEN_ADDRESS,
    chain=GNOSIS.key,
    is_native=True,
)

TOKENS: dict[str, list[TokenConfig]] = {
    POLYGON.key: [EURE, MATIC],
    GNOSIS.key: [LP_EURE, XDAI],
}


@dataclass(frozen=True)
class FarmingPair:
    """Deposit token on the source chain, LP token on the reward chain."""

    deposit: TokenConfig
    reward: TokenConfig

    @property
    def source_chain(self) -> ChainConfig:
        return CHAINS[self.deposit.chain]

    @property
    def reward_chain(self) -> ChainConfig:
        return CHAINS[self.reward.chain]


FARMING_PAIR = FarmingPair(deposit=EURE, reward=LP_EURE)
