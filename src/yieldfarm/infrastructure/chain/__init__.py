"""Chain access: client interface, simulated and RPC implementations."""

from yieldfarm.infrastructure.chain.client import (
    ChainClient,
    PollOutcome,
    PollResult,
    SubmissionRequest,
)
from yieldfarm.infrastructure.chain.rpc import RpcChainClient, RpcEndpointPool
from yieldfarm.infrastructure.chain.simulated import SimulatedChainClient
from yieldfarm.infrastructure.chain.tokens import (
    CHAINS,
    FARMING_PAIR,
    ChainConfig,
    TokenConfig,
)

__all__ = [
    "CHAINS",
    "FARMING_PAIR",
    "ChainClient",
    "ChainConfig",
    "PollOutcome",
    "PollResult",
    "RpcChainClient",
    "RpcEndpointPool",
    "SimulatedChainClient",
    "SubmissionRequest",
    "TokenConfig",
]
