"""Keychain creation ceremony for TSS wallets."""

import json
import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass, replace
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .api import CoordinationClient, RequestTracer
from .eddsa import CombinedKey, Eddsa, KeyShare, ShareCrypto, YShare
from .transport import EncryptionKeyPair, decrypt_text, encrypt_text
from .types import (
    ConfigError,
    DecryptionError,
    DirectionError,
    IntegrityError,
    Keychain,
    KeychainShare,
    NotFoundError,
    OwnershipError,
    PartyRole,
)
from .validation import KEY_SHARE_DIRECTIONS, is_addressed_to, is_directed, is_own_share

logger = logging.getLogger(__name__)

THRESHOLD = 2
TOTAL_PARTIES = 3
PBKDF2_ITERATIONS = 100000


@dataclass
class KeygenConfig:
    """Configuration for keychain creation."""

    coin: str
    bitgo_public_key: str | None = None  # Fetched from service constants if unset


@dataclass
class KeychainSet:
    """The three keychains of a wallet."""

    user: Keychain
    backup: Keychain
    bitgo: Keychain


class KeychainCoordinator:
    """
    Runs the one-time 3-party keychain ceremony.

    The user and backup key shares are generated locally; the service
    generates its own share when :meth:`create_bitgo_keychain` is called and
    returns its shares encrypted for the user and backup. Each local party
    then combines and checks that it derived the same wallet public key.

    Example:
        >>> coordinator = KeychainCoordinator(client, KeygenConfig(coin="tsol"))
        >>> keychains = await coordinator.create_keychains("passphrase")
        >>> keychains.user.common_pub == keychains.bitgo.common_pub
        True
    """

    def __init__(
        self,
        client: CoordinationClient,
        config: KeygenConfig,
        mpc: ShareCrypto | None = None,
    ) -> None:
        if not config.coin:
            raise ConfigError("Coin is required")
        self._client = client
        self._config = config
        self._mpc = mpc or Eddsa()

    @property
    def mpc(self) -> ShareCrypto:
        return self._mpc

    async def create_keychains(
        self,
        passphrase: str,
        enterprise: str | None = None,
        original_passcode_encryption_code: str | None = None,
        req_id: RequestTracer | None = None,
    ) -> KeychainSet:
        """Generate local key shares and run all three keychain steps."""
        user_key_share = self._mpc.key_share(PartyRole.USER, THRESHOLD, TOTAL_PARTIES)
        backup_key_share = self._mpc.key_share(PartyRole.BACKUP, THRESHOLD, TOTAL_PARTIES)
        user_gpg_key = EncryptionKeyPair.generate()
        req_id = req_id or RequestTracer()

        bitgo = await self.create_bitgo_keychain(
            user_gpg_key, user_key_share, backup_key_share, enterprise, req_id=req_id
        )
        user = await self.create_user_keychain(
            user_gpg_key,
            user_key_share,
            backup_key_share,
            bitgo,
            passphrase,
            original_passcode_encryption_code,
            req_id=req_id,
        )
        backup = await self.create_backup_keychain(
            user_gpg_key, user_key_share, backup_key_share, bitgo, passphrase, req_id=req_id
        )
        return KeychainSet(user=user, backup=backup, bitgo=bitgo)

    async def create_bitgo_keychain(
        self,
        user_gpg_key: EncryptionKeyPair,
        user_key_share: KeyShare,
        backup_key_share: KeyShare,
        enterprise: str | None = None,
        backup_gpg_key: EncryptionKeyPair | None = None,
        req_id: RequestTracer | None = None,
    ) -> Keychain:
        """Ask the service to create its keychain from our shares for it."""
        self._check_owner(user_key_share, PartyRole.USER, "user")
        self._check_owner(backup_key_share, PartyRole.BACKUP, "backup")
        backup_gpg_key = backup_gpg_key or user_gpg_key

        bitgo_public_key = await self._bitgo_public_key()
        key_shares = [
            self._share_for_bitgo(user_key_share, PartyRole.USER, bitgo_public_key),
            self._share_for_bitgo(backup_key_share, PartyRole.BACKUP, bitgo_public_key),
        ]
        params: dict[str, Any] = {
            "type": "tss",
            "source": PartyRole.BITGO.share_type,
            "keyShares": [s.to_dict() for s in key_shares],
            "userGPGPublicKey": user_gpg_key.public_key,
            "backupGPGPublicKey": backup_gpg_key.public_key,
        }
        if enterprise:
            params["enterprise"] = enterprise

        logger.info("Creating bitgo keychain for %s", self._config.coin)
        keychain = await self._client.create_key(self._config.coin, params, req_id=req_id)
        logger.info("Created bitgo keychain %s", keychain.id)
        return keychain

    async def create_user_keychain(
        self,
        user_gpg_key: EncryptionKeyPair,
        user_key_share: KeyShare,
        backup_key_share: KeyShare,
        bitgo_keychain: Keychain,
        passphrase: str,
        original_passcode_encryption_code: str | None = None,
        req_id: RequestTracer | None = None,
    ) -> Keychain:
        """Combine the user's key and register the user keychain."""
        self._check_owner(user_key_share, PartyRole.USER, "user")
        combined = self._combine(
            PartyRole.USER, user_gpg_key, user_key_share, backup_key_share, bitgo_keychain
        )

        prv = combined.p_share.to_json()
        params: dict[str, Any] = {
            "type": "tss",
            "source": PartyRole.USER.share_type,
            "commonPub": combined.common_pub,
            "encryptedPrv": encrypt_prv(passphrase, prv),
        }
        if original_passcode_encryption_code:
            params["originalPasscodeEncryptionCode"] = original_passcode_encryption_code

        keychain = await self._client.create_key(self._config.coin, params, req_id=req_id)
        logger.info("Created user keychain %s", keychain.id)
        return replace(
            keychain,
            common_pub=keychain.common_pub or combined.common_pub,
            encrypted_prv=keychain.encrypted_prv or params["encryptedPrv"],
        )

    async def create_backup_keychain(
        self,
        backup_gpg_key: EncryptionKeyPair,
        user_key_share: KeyShare,
        backup_key_share: KeyShare,
        bitgo_keychain: Keychain,
        passphrase: str,
        req_id: RequestTracer | None = None,
    ) -> Keychain:
        """Combine the backup key and register the backup keychain.

        ``backup_gpg_key`` decrypts the Bitgo to Backup share, so it must be the
        key given as ``backup_gpg_key`` to :meth:`create_bitgo_keychain` (the
        user key when none was given there). The returned keychain also
        carries the clear-text ``prv`` so it can be exported to cold storage.
        """
        self._check_owner(backup_key_share, PartyRole.BACKUP, "backup")
        combined = self._combine(
            PartyRole.BACKUP, backup_gpg_key, backup_key_share, user_key_share, bitgo_keychain
        )

        prv = combined.p_share.to_json()
        encrypted_prv = encrypt_prv(passphrase, prv)
        params = {
            "type": "tss",
            "source": PartyRole.BACKUP.share_type,
            "commonPub": combined.common_pub,
            "encryptedPrv": encrypted_prv,
        }

        keychain = await self._client.create_key(self._config.coin, params, req_id=req_id)
        logger.info("Created backup keychain %s", keychain.id)
        return replace(
            keychain,
            common_pub=keychain.common_pub or combined.common_pub,
            prv=prv,
            encrypted_prv=keychain.encrypted_prv or encrypted_prv,
        )

    def _combine(
        self,
        role: PartyRole,
        gpg_key: EncryptionKeyPair,
        own_key_share: KeyShare,
        peer_key_share: KeyShare,
        bitgo_keychain: Keychain,
    ) -> CombinedKey:
        """Combine ``role``'s share with the peer's and the service's dealt shares."""
        name = role.share_type
        peer = PartyRole(peer_key_share.u_share.i)

        peer_y_share = peer_key_share.y_shares.get(role)
        if peer_y_share is None or not is_addressed_to(peer_y_share, role, dealer=peer):
            raise DirectionError(
                f"Invalid {peer.label} key share, is not from {peer.label} to {role.label}",
                i=getattr(peer_y_share, "i", None),
                j=getattr(peer_y_share, "j", None),
            )

        bitgo_share = next(
            (
                s
                for s in bitgo_keychain.key_shares
                if is_directed(s, PartyRole.BITGO, role, KEY_SHARE_DIRECTIONS)
            ),
            None,
        )
        if bitgo_share is None:
            raise NotFoundError(
                f"Missing Bitgo to {role.label} key share",
                keychain_id=bitgo_keychain.id,
            )

        bitgo_y_share = YShare(
            i=PartyRole.BITGO,
            j=role,
            y=bitgo_share.public_share,
            u=decrypt_text(gpg_key.private_key, bitgo_share.private_share),
        )
        combined = self._mpc.key_combine(own_key_share.u_share, [peer_y_share, bitgo_y_share])

        if combined.common_pub != bitgo_keychain.common_pub:
            logger.warning("commonPub mismatch while creating %s keychain", name)
            raise IntegrityError(
                f"Failed to create {name} keychain - commonPubs do not match.",
                local_common_pub=combined.common_pub,
                bitgo_common_pub=bitgo_keychain.common_pub,
            )
        logger.debug("%s commonPub verified: %s", name, combined.common_pub)
        return combined

    def _share_for_bitgo(
        self, key_share: KeyShare, role: PartyRole, bitgo_public_key: str
    ) -> KeychainShare:
        y_share = key_share.y_shares.get(PartyRole.BITGO)
        if y_share is None or not is_addressed_to(y_share, PartyRole.BITGO, dealer=role):
            raise DirectionError(
                f"Invalid {role.label} key share, is not from {role.label} to Bitgo",
                i=getattr(y_share, "i", None),
                j=getattr(y_share, "j", None),
            )
        return KeychainShare(
            from_role=role,
            to_role=PartyRole.BITGO,
            public_share=y_share.y,
            private_share=encrypt_text(bitgo_public_key, y_share.u),
        )

    @staticmethod
    def _check_owner(key_share: KeyShare, role: PartyRole, name: str) -> None:
        if not is_own_share(key_share.u_share, role):
            raise OwnershipError(
                f"Invalid {name} key share, doesnt belong to the {role.label}",
                i=key_share.u_share.i,
                expected=int(role),
            )

    async def _bitgo_public_key(self) -> str:
        if self._config.bitgo_public_key:
            return self._config.bitgo_public_key
        constants = await self._client.get_constants()
        key = constants.get("tss", {}).get("bitgoPublicKey")
        if not key:
            raise ConfigError("Unable to find the Bitgo TSS public key")
        return key


def encrypt_prv(passphrase: str, plaintext: str) -> str:
    """Encrypt private key material with a passphrase (ChaCha20-Poly1305)."""
    salt = secrets.token_bytes(32)
    nonce = secrets.token_bytes(12)

    # Derive key from passphrase
    key = hashlib.pbkdf2_hmac("sha256", passphrase.encode(), salt, PBKDF2_ITERATIONS, dklen=32)

    cipher = ChaCha20Poly1305(key)
    ciphertext = cipher.encrypt(nonce, plaintext.encode(), None)

    return json.dumps({
        "v": 1,
        "salt": salt.hex(),
        "nonce": nonce.hex(),
        "ct": base64.b64encode(ciphertext).decode(),
    })


def decrypt_prv(passphrase: str, encrypted: str) -> str:
    """Decrypt private key material produced by :func:`encrypt_prv`."""
    try:
        data = json.loads(encrypted)
        salt = bytes.fromhex(data["salt"])
        nonce = bytes.fromhex(data["nonce"])
        ciphertext = base64.b64decode(data["ct"])
    except (ValueError, KeyError, TypeError) as e:
        raise DecryptionError("Malformed encrypted private key", cause=e) from e

    key = hashlib.pbkdf2_hmac("sha256", passphrase.encode(), salt, PBKDF2_ITERATIONS, dklen=32)
    try:
        return ChaCha20Poly1305(key).decrypt(nonce, ciphertext, None).decode()
    except InvalidTag as e:
        raise DecryptionError("Incorrect passphrase", cause=e) from e
