"""Tests for wallet signature authentication."""

from eth_account import Account
from eth_account.messages import encode_defunct

from tests.fakes import USER
from yieldfarm.services.auth import WalletAuthService


def sign(account, message: str) -> str:
    signed = account.sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


class TestWalletAuthService:
    """Tests for WalletAuthService."""

    def setup_method(self):
        self.now = 1_700_000_000.0
        self.service = WalletAuthService(
            app_name="yieldfarm-test",
            nonce_expire_seconds=300,
            clock=lambda: self.now,
        )
        self.account = Account.create()

    def test_challenge_message(self):
        """The challenge embeds the app name, wallet and nonce."""
        challenge = self.service.issue_challenge(self.account.address)

        assert "yieldfarm-test" in challenge.message
        assert challenge.nonce in challenge.message
        assert self.account.address in challenge.message
        assert challenge.expires_at == int(self.now) + 300

    def test_valid_signature(self):
        """A correctly signed challenge verifies."""
        challenge = self.service.issue_challenge(self.account.address)

        result = self.service.verify(
            self.account.address, sign(self.account, challenge.message), challenge.nonce
        )

        assert result.valid is True
        assert result.wallet_address == self.account.address

    def test_nonce_single_use(self):
        """A nonce cannot be replayed."""
        challenge = self.service.issue_challenge(self.account.address)
        signature = sign(self.account, challenge.message)
        self.service.verify(self.account.address, signature, challenge.nonce)

        result = self.service.verify(self.account.address, signature, challenge.nonce)

        assert result.valid is False
        assert result.error == "Invalid or expired nonce"

    def test_expired_nonce(self):
        """Nonces expire."""
        challenge = self.service.issue_challenge(self.account.address)
        self.now += 301

        result = self.service.verify(
            self.account.address, sign(self.account, challenge.message), challenge.nonce
        )

        assert result.valid is False
        assert result.error == "Nonce has expired"

    def test_signature_from_other_wallet(self):
        """A signature by a different key does not match."""
        challenge = self.service.issue_challenge(self.account.address)
        impostor = Account.create()

        result = self.service.verify(
            self.account.address, sign(impostor, challenge.message), challenge.nonce
        )

        assert result.valid is False
        assert result.error == "Signature does not match wallet address"

    def test_malformed_signature(self):
        """Garbage signatures are reported, not raised."""
        challenge = self.service.issue_challenge(self.account.address)

        result = self.service.verify(self.account.address, "0x1234", challenge.nonce)

        assert result.valid is False
        assert result.error == "Malformed signature"

    def test_invalid_address(self):
        """Malformed addresses fail fast."""
        assert WalletAuthService.is_valid_address("0x123") is False
        assert WalletAuthService.is_valid_address(USER) is True
        assert WalletAuthService.is_valid_address(None) is False
