"""Main TSS wallet class."""

from dataclasses import dataclass
from typing import Any

from .api import ApiConfig, BitGoClient, CoordinationClient, RequestTracer
from .eddsa import Eddsa, PShare, ShareCrypto
from .intents import PrebuildParams
from .keygen import KeychainCoordinator, KeychainSet, KeygenConfig, decrypt_prv
from .signing import SigningConfig, SigningCoordinator
from .types import ConfigError, Keychain, TxRequest


@dataclass
class WalletConfig:
    """Configuration for a TSS wallet."""

    coin: str
    wallet_id: str | None = None
    api: ApiConfig | None = None
    bitgo_public_key: str | None = None
    read_retries: int = 2
    read_retry_delay_secs: float = 1.0


class TssWallet:
    """
    TSS wallet.

    Ties the keychain ceremony and the signing protocol to one coin and
    wallet. Any two of the three parties (User, Backup, Bitgo) can sign;
    this class drives the User side.

    Example:
        >>> async with TssWallet(WalletConfig(coin="tsol", api=ApiConfig.from_env())) as wallet:
        ...     keychains = await wallet.create_keychains("passphrase")
        ...     # ... create the wallet on the service from the three keychain ids ...
        ...     wallet.set_wallet_id(wallet_id)
        ...     tx_request = await wallet.prebuild_tx_with_intent({
        ...         "recipients": [{"address": "...", "amount": "10000"}],
        ...     })
        ...     await wallet.sign_tx_request(tx_request, keychains.user, "passphrase")
    """

    def __init__(
        self,
        config: WalletConfig,
        client: CoordinationClient | None = None,
        mpc: ShareCrypto | None = None,
    ) -> None:
        self._owned_client: BitGoClient | None = None
        if client is None:
            if config.api is None:
                raise ConfigError("Either an API config or a client is required")
            client = self._owned_client = BitGoClient(config.api)
        self._config = config
        self._client = client
        self._mpc = mpc or Eddsa()
        self._keychains = KeychainCoordinator(
            client,
            KeygenConfig(coin=config.coin, bitgo_public_key=config.bitgo_public_key),
            self._mpc,
        )
        self._signer: SigningCoordinator | None = None

    async def aclose(self) -> None:
        """Close the HTTP client if this wallet created it."""
        if self._owned_client is not None:
            await self._owned_client.aclose()

    async def __aenter__(self) -> "TssWallet":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def client(self) -> CoordinationClient:
        return self._client

    @property
    def coin(self) -> str:
        return self._config.coin

    @property
    def wallet_id(self) -> str | None:
        return self._config.wallet_id

    def set_wallet_id(self, wallet_id: str) -> None:
        """Bind the wallet id once the service has created the wallet."""
        self._config.wallet_id = wallet_id
        self._signer = None

    @property
    def keychains(self) -> KeychainCoordinator:
        return self._keychains

    @property
    def signer(self) -> SigningCoordinator:
        """Signing coordinator for this wallet (requires a wallet id)."""
        if self._signer is None:
            if not self._config.wallet_id:
                raise ConfigError("No wallet id set")
            self._signer = SigningCoordinator(
                self._client,
                SigningConfig(
                    coin=self._config.coin,
                    wallet_id=self._config.wallet_id,
                    read_retries=self._config.read_retries,
                    read_retry_delay_secs=self._config.read_retry_delay_secs,
                ),
                self._mpc,
            )
        return self._signer

    # ============================================================================
    # Key Management
    # ============================================================================

    async def create_keychains(
        self,
        passphrase: str,
        enterprise: str | None = None,
        original_passcode_encryption_code: str | None = None,
    ) -> KeychainSet:
        """Run the keychain ceremony for this coin."""
        return await self._keychains.create_keychains(
            passphrase, enterprise, original_passcode_encryption_code
        )

    # ============================================================================
    # Transactions
    # ============================================================================

    async def prebuild_tx_with_intent(
        self,
        params: PrebuildParams | dict[str, Any],
        req_id: RequestTracer | None = None,
    ) -> TxRequest:
        """Create a tx request from a payment intent."""
        return await self.signer.prebuild_tx_with_intent(params, req_id)

    async def sign_tx_request(
        self,
        tx_request: TxRequest | str,
        user_keychain: Keychain,
        passphrase: str,
        req_id: RequestTracer | None = None,
    ) -> TxRequest:
        """Decrypt the user's key and sign ``tx_request`` with it."""
        if not user_keychain.encrypted_prv:
            raise ConfigError(f"Keychain {user_keychain.id} has no encrypted private key")
        p_share = PShare.from_json(decrypt_prv(passphrase, user_keychain.encrypted_prv))
        return await self.signer.sign_tx_request(tx_request, p_share, req_id)

    # ============================================================================
    # Utilities
    # ============================================================================

    def get_info(self) -> dict[str, Any]:
        """Get wallet info summary."""
        return {
            "coin": self._config.coin,
            "wallet_id": self._config.wallet_id,
            "base_url": self._config.api.base_url if self._config.api else None,
        }
