"""Wallet signature proofs for real-time channel authentication."""

import logging
import secrets
import time
from collections.abc import Callable

from eth_account import Account
from eth_account.messages import encode_defunct
from pydantic import BaseModel
from web3 import Web3

from yieldfarm.core.schemas import CamelModel

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_TEMPLATE = (
    "Sign this message to receive live updates from {app_name}.\n\n"
    "Wallet: {wallet}\n"
    "Nonce: {nonce}\n"
    "Issued at: {timestamp}\n\n"
    "This signature will not trigger any blockchain transaction."
)


class SignInChallenge(CamelModel):
    """Message a wallet must sign to authenticate a connection."""

    nonce: str
    message: str
    expires_at: int
    wallet_address: str


class SignatureVerificationResult(BaseModel):
    """Result of signature verification."""

    valid: bool
    wallet_address: str | None = None
    error: str | None = None


class WalletAuthService:
    """Issues one-time nonces and verifies EIP-191 signatures over them."""

    def __init__(
        self,
        app_name: str = "yieldfarm-backend",
        nonce_expire_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize wallet auth service.

        Args:
            app_name: Name shown in the sign-in message
            nonce_expire_seconds: How long a nonce stays valid
            clock: Source of the current unix time
        """
        self.app_name = app_name
        self.nonce_expire_seconds = nonce_expire_seconds
        self._clock = clock
        self._challenges: dict[tuple[str, str], SignInChallenge] = {}

    @staticmethod
    def is_valid_address(address: str | None) -> bool:
        return bool(address) and Web3.is_address(address)

    def issue_challenge(self, wallet_address: str) -> SignInChallenge:
        """Create a nonce and the message the wallet must sign.

        Args:
            wallet_address: Wallet requesting authentication

        Returns:
            The challenge to present to the wallet

        Raises:
            ValueError: If the address is malformed
        """
        wallet = Web3.to_checksum_address(wallet_address)
        now = int(self._clock())
        nonce = secrets.token_hex(16)
        challenge = SignInChallenge(
            nonce=nonce,
            message=DEFAULT_MESSAGE_TEMPLATE.format(
                app_name=self.app_name, wallet=wallet, nonce=nonce, timestamp=now
            ),
            expires_at=now + self.nonce_expire_seconds,
            wallet_address=wallet,
        )
        self._purge_expired()
        self._challenges[(wallet.lower(), nonce)] = challenge
        return challenge

    def verify(
        self, wallet_address: str, signature: str, nonce: str
    ) -> SignatureVerificationResult:
        """Verify a signature over a previously issued nonce.

        Nonces are single use: a successful verification consumes it.

        Args:
            wallet_address: Address claiming ownership
            signature: Hex signature produced by the wallet
            nonce: Nonce from the issued challenge

        Returns:
            Verification result
        """
        if not self.is_valid_address(wallet_address):
            return SignatureVerificationResult(valid=False, error="Invalid wallet address")

        key = (wallet_address.lower(), nonce)
        challenge = self._challenges.get(key)
        if challenge is None:
            return SignatureVerificationResult(valid=False, error="Invalid or expired nonce")

        if self._clock() > challenge.expires_at:
            del self._challenges[key]
            return SignatureVerificationResult(valid=False, error="Nonce has expired")

        try:
            recovered = Account.recover_message(
                encode_defunct(text=challenge.message), signature=signature
            )
        except Exception as e:
            logger.warning(f"Signature recovery failed for {wallet_address}: {e}")
            return SignatureVerificationResult(valid=False, error="Malformed signature")

        if recovered.lower() != wallet_address.lower():
            return SignatureVerificationResult(
                valid=False, error="Signature does not match wallet address"
            )

        del self._challenges[key]
        return SignatureVerificationResult(valid=True, wallet_address=recovered)

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, c in self._challenges.items() if now > c.expires_at]:
            del self._challenges[key]
