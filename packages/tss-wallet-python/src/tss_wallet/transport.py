"""Public-key encryption of key shares crossing a party boundary.

Each message uses a fresh X25519 key: the recipient's public key and the
ephemeral key derive an AES-GCM key via HKDF. Keys are PEM, messages are
armored base64, so both travel safely inside JSON.
"""

import os
import json
import base64
import textwrap
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .types import DecryptionError

ARMOR_HEADER = "-----BEGIN TSS WALLET MESSAGE-----"
ARMOR_FOOTER = "-----END TSS WALLET MESSAGE-----"
HKDF_INFO = b"tss-wallet-share-transport-v1"


@dataclass(frozen=True)
class EncryptionKeyPair:
    """Transport key pair, PEM encoded."""

    public_key: str
    private_key: str

    @classmethod
    def generate(cls) -> "EncryptionKeyPair":
        """Generate a new X25519 key pair."""
        priv = x25519.X25519PrivateKey.generate()
        private_pem = priv.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        public_pem = priv.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        return cls(public_key=public_pem, private_key=private_pem)


def encrypt_text(public_key: str, text: str) -> str:
    """Encrypt ``text`` so only the holder of ``public_key``'s pair can read it."""
    recipient = serialization.load_pem_public_key(public_key.encode())
    if not isinstance(recipient, x25519.X25519PublicKey):
        raise ValueError("Transport public key must be an X25519 key")

    ephemeral = x25519.X25519PrivateKey.generate()
    key = _derive_key(ephemeral.exchange(recipient))
    nonce = os.urandom(12)
    ciphertext = AESGCM(key).encrypt(nonce, text.encode(), None)

    epk = ephemeral.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    body = json.dumps({
        "epk": base64.b64encode(epk).decode(),
        "nonce": base64.b64encode(nonce).decode(),
        "ct": base64.b64encode(ciphertext).decode(),
    })
    wrapped = textwrap.wrap(base64.b64encode(body.encode()).decode(), 64)
    return "\n".join([ARMOR_HEADER, *wrapped, ARMOR_FOOTER]) + "\n"


def decrypt_text(private_key: str, armored: str) -> str:
    """Decrypt an armored message produced by :func:`encrypt_text`."""
    priv = serialization.load_pem_private_key(private_key.encode(), password=None)
    if not isinstance(priv, x25519.X25519PrivateKey):
        raise ValueError("Transport private key must be an X25519 key")

    try:
        body = json.loads(base64.b64decode(_dearmor(armored)))
        epk = x25519.X25519PublicKey.from_public_bytes(base64.b64decode(body["epk"]))
        nonce = base64.b64decode(body["nonce"])
        ciphertext = base64.b64decode(body["ct"])
    except (ValueError, KeyError, TypeError) as e:
        raise DecryptionError("Malformed encrypted message", cause=e) from e

    key = _derive_key(priv.exchange(epk))
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError("Unable to decrypt message with the supplied key", cause=e) from e
    return plaintext.decode()


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=HKDF_INFO,
    ).derive(shared_secret)


def _dearmor(armored: str) -> str:
    lines = [line.strip() for line in armored.strip().splitlines()]
    if len(lines) < 2 or lines[0] != ARMOR_HEADER or lines[-1] != ARMOR_FOOTER:
        raise ValueError("Missing armor header or footer")
    return "".join(lines[1:-1])
