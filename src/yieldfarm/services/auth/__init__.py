"""Wallet authentication for real-time connections."""

from yieldfarm.services.auth.wallet_auth import (
    SignatureVerificationResult,
    SignInChallenge,
    WalletAuthService,
)

__all__ = [
    "SignInChallenge",
    "SignatureVerificationResult",
    "WalletAuthService",
]
