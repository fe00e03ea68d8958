"""Ownership and direction checks for shares.

Pure predicates: they never raise and never touch the network. Callers turn
a ``False`` into the matching typed error.
"""

from typing import Protocol

from .types import PartyRole

# Every ordered (from, to) pair a signature share record may carry.
SIGNATURE_SHARE_DIRECTIONS = frozenset({
    (PartyRole.USER, PartyRole.BITGO),
    (PartyRole.BITGO, PartyRole.USER),
    (PartyRole.BACKUP, PartyRole.BITGO),
    (PartyRole.BITGO, PartyRole.BACKUP),
})

# Key shares are dealt between every pair of distinct parties.
KEY_SHARE_DIRECTIONS = frozenset(
    (a, b) for a in PartyRole for b in PartyRole if a is not b
)


class _Indexed(Protocol):
    i: int


class _Pair(Protocol):
    i: int
    j: int


class _Routed(Protocol):
    from_role: PartyRole
    to_role: PartyRole


def is_own_share(share: _Indexed, expected_index: int) -> bool:
    """Whether ``share`` was produced by the party at ``expected_index``."""
    return share.i == int(expected_index)


def is_directed(
    record: _Routed,
    expected_from: PartyRole,
    expected_to: PartyRole,
    allowed: frozenset[tuple[PartyRole, PartyRole]] = SIGNATURE_SHARE_DIRECTIONS,
) -> bool:
    """Whether ``record`` flows exactly from ``expected_from`` to ``expected_to``.

    ``allowed`` is the direction set for the record's kind; key share
    records pass :data:`KEY_SHARE_DIRECTIONS`.
    """
    expected = (expected_from, expected_to)
    if expected not in allowed:
        return False
    return (record.from_role, record.to_role) == expected


def is_r_share_directed(r_share: _Pair, expected_i: int, expected_j: int) -> bool:
    """Whether ``r_share`` was produced by ``expected_i`` for ``expected_j``."""
    if r_share.i == r_share.j:
        return False
    return r_share.i == int(expected_i) and r_share.j == int(expected_j)


def is_addressed_to(share: _Pair, recipient: int, dealer: int | None = None) -> bool:
    """Whether a dealt key share is meant for ``recipient`` (and from ``dealer``)."""
    if share.i == share.j or share.j != int(recipient):
        return False
    return dealer is None or share.i == int(dealer)
