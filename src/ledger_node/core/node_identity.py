"""
CometBFT node identity derivation.

A node id is the first 20 bytes of the SHA-256 digest of the consensus public
key's canonical encoding. It is always recomputed from the key, never stored
on its own.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from ledger_node.core.crypto_utils import KeyScheme, PublicKey

NODE_ID_LENGTH = 20


@dataclass(frozen=True)
class NodeId:
    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != NODE_ID_LENGTH:
            raise ValueError(f"Node id must be {NODE_ID_LENGTH} bytes, got {len(self.raw)}")

    def __str__(self) -> str:
        return self.raw.hex()

    def to_address(self) -> str:
        """Uppercase hex, as the engine writes validator addresses."""
        return self.raw.hex().upper()


def _truncated_digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()[:NODE_ID_LENGTH]


def id_from_pk(pk: PublicKey) -> NodeId:
    """Derive the CometBFT node id from a consensus public key."""
    if pk.scheme is KeyScheme.ED25519:
        return NodeId(_truncated_digest(pk.to_bytes()))
    if pk.scheme is KeyScheme.SECP256K1:
        return NodeId(_truncated_digest(pk.to_bytes()))
    raise ValueError(f"Unsupported key scheme: {pk.scheme!r}")
