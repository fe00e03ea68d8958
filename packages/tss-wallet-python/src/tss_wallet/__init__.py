"""
TSS Wallet SDK

A Python SDK for creating 2-of-3 threshold-signature (TSS) wallet keychains
and co-signing transactions with an operating service, without any single
party ever holding the full private key.

Example:
    >>> from tss_wallet import TssWallet, WalletConfig, ApiConfig
    >>>
    >>> wallet = TssWallet(WalletConfig(coin="tsol", api=ApiConfig.from_env()))
    >>> keychains = await wallet.create_keychains("passphrase")
    >>> # ... create the wallet on the service, then:
    >>> wallet.set_wallet_id(wallet_id)
    >>> tx_request = await wallet.prebuild_tx_with_intent({
    ...     "recipients": [{"address": "...", "amount": "10000"}],
    ... })
    >>> await wallet.sign_tx_request(tx_request, keychains.user, "passphrase")
"""

from .wallet import TssWallet, WalletConfig
from .api import ApiConfig, BitGoClient, CoordinationClient, Environments, RequestTracer
from .eddsa import (
    CombinedKey,
    Eddsa,
    GShare,
    KeyShare,
    PShare,
    RShare,
    ShareCrypto,
    SignatureResult,
    SignShare,
    UShare,
    XShare,
    YShare,
)
from .intents import Memo, PrebuildParams, Recipient
from .keygen import KeychainCoordinator, KeychainSet, KeygenConfig, decrypt_prv, encrypt_prv
from .signing import SigningConfig, SigningCoordinator, SigningState
from .transport import EncryptionKeyPair, decrypt_text, encrypt_text
from .types import (
    PartyRole,
    ErrorCode,
    TssWalletError,
    OwnershipError,
    DirectionError,
    IntegrityError,
    NotFoundError,
    TransportError,
    DecryptionError,
    ConfigError,
    Keychain,
    KeychainShare,
    SignatureShareRecord,
    TxRequest,
    UnsignedTx,
)

__version__ = "0.1.0"
__all__ = [
    # Wallet
    "TssWallet",
    "WalletConfig",
    # Remote coordination
    "ApiConfig",
    "BitGoClient",
    "CoordinationClient",
    "Environments",
    "RequestTracer",
    # Share crypto
    "ShareCrypto",
    "Eddsa",
    "UShare",
    "YShare",
    "KeyShare",
    "PShare",
    "CombinedKey",
    "XShare",
    "RShare",
    "SignShare",
    "GShare",
    "SignatureResult",
    # Transport
    "EncryptionKeyPair",
    "encrypt_text",
    "decrypt_text",
    # Key generation
    "KeygenConfig",
    "KeychainCoordinator",
    "KeychainSet",
    "encrypt_prv",
    "decrypt_prv",
    # Signing
    "SigningConfig",
    "SigningCoordinator",
    "SigningState",
    # Intents
    "PrebuildParams",
    "Recipient",
    "Memo",
    # Types
    "PartyRole",
    "ErrorCode",
    "TssWalletError",
    "OwnershipError",
    "DirectionError",
    "IntegrityError",
    "NotFoundError",
    "TransportError",
    "DecryptionError",
    "ConfigError",
    "Keychain",
    "KeychainShare",
    "SignatureShareRecord",
    "TxRequest",
    "UnsignedTx",
]
