"""Threshold EdDSA share arithmetic.

The coordinators only talk to the :class:`ShareCrypto` protocol. :class:`Eddsa`
is the default provider: Shamir sharing over the Ed25519 group order with
libsodium doing the point operations, producing standard Ed25519 signatures.
"""

import json
import hashlib
import secrets
from dataclasses import dataclass, field
from typing import Any, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from nacl.bindings import crypto_core_ed25519_add, crypto_scalarmult_ed25519_base_noclamp

# Order of the Ed25519 base point
L = 2**252 + 27742317777372353535851937790883648493


@dataclass(frozen=True)
class UShare:
    """A party's own share of its own secret (never leaves the party)."""

    i: int
    t: int
    n: int
    y: str  # Dealer public key, hex
    u: str  # Own Shamir share of the dealer secret, hex scalar
    prefix: str


@dataclass(frozen=True)
class YShare:
    """Share of dealer ``i``'s secret addressed to party ``j``."""

    i: int
    j: int
    y: str
    u: str


@dataclass(frozen=True)
class KeyShare:
    """Output of key share generation for one party."""

    u_share: UShare
    y_shares: dict[int, YShare] = field(default_factory=dict)


@dataclass(frozen=True)
class PShare:
    """Combined private share of one party plus the wallet public key."""

    i: int
    y: str
    x: str
    prefix: str
    t: int | None = None
    n: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PShare":
        return cls(
            i=int(data["i"]),
            y=data["y"],
            x=data["x"],
            prefix=data["prefix"],
            t=int(data["t"]) if data.get("t") is not None else None,
            n=int(data["n"]) if data.get("n") is not None else None,
        )

    @classmethod
    def from_json(cls, value: str) -> "PShare":
        return cls.from_dict(json.loads(value))

    def to_json(self) -> str:
        data: dict[str, Any] = {"i": self.i, "y": self.y, "x": self.x, "prefix": self.prefix}
        if self.t is not None:
            data["t"] = self.t
        if self.n is not None:
            data["n"] = self.n
        return json.dumps(data)


@dataclass(frozen=True)
class CombinedKey:
    """Result of combining a party's own share with its peers' shares."""

    p_share: PShare

    @property
    def common_pub(self) -> str:
        """Wallet aggregate public key, hex."""
        return self.p_share.y


@dataclass(frozen=True)
class XShare:
    """A signer's own nonce share and commitment for one session."""

    i: int
    y: str
    x: str
    r: str
    R: str


@dataclass(frozen=True)
class RShare:
    """Nonce share produced by party ``i`` and addressed to party ``j``."""

    i: int
    j: int
    r: str
    R: str


@dataclass(frozen=True)
class SignShare:
    """Ephemeral per-session signing state."""

    x_share: XShare
    r_shares: dict[int, RShare] = field(default_factory=dict)


@dataclass(frozen=True)
class GShare:
    """Partial signature of party ``i``."""

    i: int
    y: str
    gamma: str
    R: str


@dataclass(frozen=True)
class SignatureResult:
    """Combined Ed25519 signature."""

    y: str
    R: str
    sigma: str

    def to_bytes(self) -> bytes:
        """Standard 64-byte Ed25519 signature (R || S)."""
        return bytes.fromhex(self.R) + bytes.fromhex(self.sigma)

    def to_hex(self) -> str:
        return self.to_bytes().hex()


class ShareCrypto(Protocol):
    """Algebraic provider used by the keychain and signing coordinators."""

    def key_share(self, index: int, threshold: int, total: int) -> KeyShare:
        ...

    def key_combine(self, u_share: UShare, y_shares: list[YShare]) -> CombinedKey:
        ...

    def sign_share(self, message: bytes, p_share: PShare, counterparties: list[int]) -> SignShare:
        ...

    def sign(self, message: bytes, x_share: XShare, r_shares: list[RShare]) -> GShare:
        ...

    def sign_combine(self, g_shares: list[GShare]) -> SignatureResult:
        ...

    def verify(self, message: bytes, signature: SignatureResult) -> bool:
        ...


class Eddsa:
    """
    Threshold Ed25519 provider.

    Example:
        >>> mpc = Eddsa()
        >>> user = mpc.key_share(1, 2, 3)
        >>> backup = mpc.key_share(2, 2, 3)
        >>> bitgo = mpc.key_share(3, 2, 3)
        >>> user_key = mpc.key_combine(user.u_share, [backup.y_shares[1], bitgo.y_shares[1]])
    """

    def key_share(self, index: int, threshold: int, total: int) -> KeyShare:
        """Generate a secret and split it among ``total`` parties."""
        index, threshold, total = int(index), int(threshold), int(total)
        if not 2 <= threshold <= total:
            raise ValueError(f"Invalid threshold {threshold} for {total} parties")
        if not 1 <= index <= total:
            raise ValueError(f"Invalid party index {index} for {total} parties")

        digest = hashlib.sha512(secrets.token_bytes(32)).digest()
        u = _clamp(digest[:32]) % L
        prefix = digest[32:].hex()
        y = _point_hex(u)

        split_u = _split(u, threshold, list(range(1, total + 1)))
        u_share = UShare(
            i=index,
            t=threshold,
            n=total,
            y=y,
            u=_scalar_hex(split_u[index]),
            prefix=prefix,
        )
        y_shares = {
            j: YShare(i=index, j=j, y=y, u=_scalar_hex(split_u[j]))
            for j in split_u
            if j != index
        }
        return KeyShare(u_share=u_share, y_shares=y_shares)

    def key_combine(self, u_share: UShare, y_shares: list[YShare]) -> CombinedKey:
        """Combine own share with the shares dealt to us by our peers."""
        y = bytes.fromhex(u_share.y)
        x = _scalar(u_share.u)
        for y_share in y_shares:
            y = crypto_core_ed25519_add(y, bytes.fromhex(y_share.y))
            x = (x + _scalar(y_share.u)) % L

        p_share = PShare(
            i=u_share.i,
            t=u_share.t,
            n=u_share.n,
            y=y.hex(),
            x=_scalar_hex(x),
            prefix=u_share.prefix,
        )
        return CombinedKey(p_share=p_share)

    def sign_share(self, message: bytes, p_share: PShare, counterparties: list[int]) -> SignShare:
        """Draw a session nonce and split it among the signing parties."""
        indices = [p_share.i] + [int(j) for j in counterparties if j != p_share.i]
        if len(indices) < 2:
            raise ValueError("Signing needs at least one counterparty")

        digest = hashlib.sha512(
            bytes.fromhex(p_share.prefix) + message + secrets.token_bytes(32)
        ).digest()
        r = int.from_bytes(digest, "little") % L
        R = _point_hex(r)

        split_r = _split(r, len(indices), indices)
        x_share = XShare(
            i=p_share.i,
            y=p_share.y,
            x=p_share.x,
            r=_scalar_hex(split_r[p_share.i]),
            R=R,
        )
        r_shares = {
            j: RShare(i=p_share.i, j=j, r=_scalar_hex(split_r[j]), R=R)
            for j in indices
            if j != p_share.i
        }
        return SignShare(x_share=x_share, r_shares=r_shares)

    def sign(self, message: bytes, x_share: XShare, r_shares: list[RShare]) -> GShare:
        """Compute this party's partial signature once all nonce shares arrived."""
        R = bytes.fromhex(x_share.R)
        r = _scalar(x_share.r)
        for r_share in r_shares:
            R = crypto_core_ed25519_add(R, bytes.fromhex(r_share.R))
            r = (r + _scalar(r_share.r)) % L

        k = _challenge(R, bytes.fromhex(x_share.y), message)
        gamma = (r + k * _scalar(x_share.x)) % L
        return GShare(i=x_share.i, y=x_share.y, gamma=_scalar_hex(gamma), R=R.hex())

    def sign_combine(self, g_shares: list[GShare]) -> SignatureResult:
        """Interpolate partial signatures into a full signature."""
        if len(g_shares) < 2:
            raise ValueError("Need at least 2 partial signatures")

        indices = [g.i for g in g_shares]
        sigma = 0
        for g_share in g_shares:
            sigma = (sigma + _lagrange(g_share.i, indices) * _scalar(g_share.gamma)) % L

        first = g_shares[0]
        return SignatureResult(y=first.y, R=first.R, sigma=_scalar_hex(sigma))

    def verify(self, message: bytes, signature: SignatureResult) -> bool:
        """Verify a combined signature against the wallet public key."""
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(signature.y))
        try:
            public_key.verify(signature.to_bytes(), message)
        except InvalidSignature:
            return False
        return True


def _clamp(raw: bytes) -> int:
    """Ed25519 secret scalar clamping."""
    data = bytearray(raw)
    data[0] &= 248
    data[31] &= 127
    data[31] |= 64
    return int.from_bytes(data, "little")


def _scalar(value: str) -> int:
    return int.from_bytes(bytes.fromhex(value), "little")


def _scalar_hex(value: int) -> str:
    return value.to_bytes(32, "little").hex()


def _point_hex(scalar: int) -> str:
    return crypto_scalarmult_ed25519_base_noclamp(scalar.to_bytes(32, "little")).hex()


def _challenge(R: bytes, y: bytes, message: bytes) -> int:
    """RFC 8032 challenge: SHA-512(R || A || M) mod L."""
    return int.from_bytes(hashlib.sha512(R + y + message).digest(), "little") % L


def _split(secret: int, threshold: int, indices: list[int]) -> dict[int, int]:
    """Shamir split of ``secret`` evaluated at each index."""
    coeffs = [secret] + [secrets.randbelow(L) for _ in range(threshold - 1)]
    return {i: _eval_poly(coeffs, i) for i in indices}


def _eval_poly(coeffs: list[int], x: int) -> int:
    result = 0
    for c in reversed(coeffs):
        result = (result * x + c) % L
    return result


def _lagrange(i: int, indices: list[int]) -> int:
    """Lagrange coefficient of ``i`` at zero over ``indices``."""
    num, den = 1, 1
    for j in indices:
        if j != i:
            num = (num * j) % L
            den = (den * (j - i)) % L
    return (num * pow(den, -1, L)) % L
