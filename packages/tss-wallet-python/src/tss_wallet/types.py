"""Core type definitions for the TSS wallet SDK."""

from enum import IntEnum
from typing import Any
from dataclasses import dataclass, field


class PartyRole(IntEnum):
    """Party roles in the 2-of-3 TSS wallet, valued by their share index."""

    USER = 1  # Wallet owner - initiates and co-signs transactions
    BACKUP = 2  # Backup key holder - cold storage / recovery
    BITGO = 3  # Operating service - co-signs with the user

    @property
    def share_type(self) -> str:
        """Wire name used in signature share and key share records."""
        return self.name.lower()

    @property
    def label(self) -> str:
        """Human readable name used in error messages."""
        return "Bitgo" if self is PartyRole.BITGO else self.name.capitalize()

    @classmethod
    def from_share_type(cls, value: str) -> "PartyRole":
        """Parse a wire name (``"user"``, ``"backup"``, ``"bitgo"``)."""
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Unknown share type: {value!r}") from None


class ErrorCode(IntEnum):
    """Error codes for SDK operations."""

    INVALID_CONFIG = 1
    OWNERSHIP = 2
    DIRECTION = 3
    INTEGRITY = 4
    NOT_FOUND = 5
    TRANSPORT = 6
    DECRYPTION_FAILED = 7
    MALFORMED_SHARE = 8
    UNKNOWN = 99


class TssWalletError(Exception):
    """Base exception for the TSS wallet SDK.

    ``context`` carries public metadata only (indices, roles, ids, public
    keys) and is rendered after the message.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        cause: Exception | None = None,
        **context: Any,
    ):
        self.code = code
        self.message = message
        self.cause = cause
        self.context = context

        full_msg = message
        if context:
            details = ", ".join(f"{k}={v}" for k, v in context.items())
            full_msg += f" ({details})"
        super().__init__(full_msg)


class OwnershipError(TssWalletError):
    """A share's embedded party index is not the expected owner."""

    def __init__(self, message: str, **context: Any):
        super().__init__(ErrorCode.OWNERSHIP, message, **context)


class DirectionError(TssWalletError):
    """A share or record does not flow in the expected protocol direction."""

    def __init__(self, message: str, **context: Any):
        super().__init__(ErrorCode.DIRECTION, message, **context)


class IntegrityError(TssWalletError):
    """Independently combined public keys disagree."""

    def __init__(self, message: str, **context: Any):
        super().__init__(ErrorCode.INTEGRITY, message, **context)


class NotFoundError(TssWalletError):
    """An expected tx request, share record or key share is absent."""

    def __init__(self, message: str, **context: Any):
        super().__init__(ErrorCode.NOT_FOUND, message, **context)


class TransportError(TssWalletError):
    """A remote coordination call failed at the network or HTTP layer."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(ErrorCode.TRANSPORT, message, cause=cause)
        self.status_code = status_code


class DecryptionError(TssWalletError):
    """Encrypted material could not be opened with the supplied key."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(ErrorCode.DECRYPTION_FAILED, message, cause=cause)


class ConfigError(TssWalletError):
    """Invalid or incomplete configuration."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_CONFIG, message)


@dataclass(frozen=True)
class SignatureShareRecord:
    """A directed, hex-encoded share exchanged between two roles."""

    from_role: PartyRole
    to_role: PartyRole
    share: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SignatureShareRecord":
        return cls(
            from_role=PartyRole.from_share_type(data["from"]),
            to_role=PartyRole.from_share_type(data["to"]),
            share=data["share"],
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "from": self.from_role.share_type,
            "to": self.to_role.share_type,
            "share": self.share,
        }


@dataclass(frozen=True)
class UnsignedTx:
    """One unsigned transaction inside a tx request."""

    signable_hex: str
    serialized_tx_hex: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnsignedTx":
        return cls(
            signable_hex=data["signableHex"],
            serialized_tx_hex=data["serializedTxHex"],
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "signableHex": self.signable_hex,
            "serializedTxHex": self.serialized_tx_hex,
        }


@dataclass
class TxRequest:
    """Pending transaction intent owned by the coordination service."""

    tx_request_id: str
    unsigned_txs: list[UnsignedTx] = field(default_factory=list)
    signature_shares: list[SignatureShareRecord] = field(default_factory=list)
    state: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TxRequest":
        return cls(
            tx_request_id=data["txRequestId"],
            unsigned_txs=[UnsignedTx.from_dict(tx) for tx in data.get("unsignedTxs") or []],
            signature_shares=[
                SignatureShareRecord.from_dict(s) for s in data.get("signatureShares") or []
            ],
            state=data.get("state"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "txRequestId": self.tx_request_id,
            "unsignedTxs": [tx.to_dict() for tx in self.unsigned_txs],
            "signatureShares": [s.to_dict() for s in self.signature_shares],
        }
        if self.state is not None:
            data["state"] = self.state
        return data


@dataclass(frozen=True)
class KeychainShare:
    """A key share travelling between two parties inside a keychain."""

    from_role: PartyRole
    to_role: PartyRole
    public_share: str  # Dealer's public key, hex
    private_share: str  # Armored ciphertext of the secret share

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeychainShare":
        return cls(
            from_role=PartyRole.from_share_type(data["from"]),
            to_role=PartyRole.from_share_type(data["to"]),
            public_share=data["publicShare"],
            private_share=data["privateShare"],
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "from": self.from_role.share_type,
            "to": self.to_role.share_type,
            "publicShare": self.public_share,
            "privateShare": self.private_share,
        }


@dataclass(frozen=True)
class Keychain:
    """Durable keychain record for one party of a wallet."""

    id: str
    pub: str = ""
    common_pub: str | None = None
    key_shares: tuple[KeychainShare, ...] = ()
    prv: str | None = None
    encrypted_prv: str | None = None
    source: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Keychain":
        return cls(
            id=str(data["id"]),
            pub=data.get("pub", ""),
            common_pub=data.get("commonPub"),
            key_shares=tuple(KeychainShare.from_dict(s) for s in data.get("keyShares") or []),
            prv=data.get("prv"),
            encrypted_prv=data.get("encryptedPrv"),
            source=data.get("source"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize without the clear-text ``prv``."""
        data: dict[str, Any] = {"id": self.id, "pub": self.pub}
        if self.common_pub is not None:
            data["commonPub"] = self.common_pub
        if self.key_shares:
            data["keyShares"] = [s.to_dict() for s in self.key_shares]
        if self.encrypted_prv is not None:
            data["encryptedPrv"] = self.encrypted_prv
        if self.source is not None:
            data["source"] = self.source
        return data
