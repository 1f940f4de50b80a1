"""User balances across the farming chains."""

from yieldfarm.services.balances.service import (
    BalanceService,
    BalanceSnapshot,
    ChainBalances,
    TokenBalance,
)

__all__ = [
    "BalanceService",
    "BalanceSnapshot",
    "ChainBalances",
    "TokenBalance",
]
