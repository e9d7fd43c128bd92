"""Consensus key types for the schemes the engine accepts (ed25519 and secp256k1)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

_CURVE = ec.SECP256K1()
_CURVE_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

ED25519_SECRET_KEY_LENGTH = 32
ED25519_PUBLIC_KEY_LENGTH = 32
SECP256K1_SECRET_KEY_LENGTH = 32
SECP256K1_PUBLIC_KEY_LENGTH = 33


class KeyScheme(Enum):
    """Supported signing schemes, valued by the engine's type tag suffix."""

    ED25519 = "Ed25519"
    SECP256K1 = "Secp256k1"


def _ed25519_public_bytes(secret: bytes) -> bytes:
    private_key = ed25519.Ed25519PrivateKey.from_private_bytes(secret)
    return private_key.public_key().public_bytes(
        serialization.Encoding.Raw,
        serialization.PublicFormat.Raw,
    )


def _secp256k1_public_bytes(secret: bytes) -> bytes:
    private_key = ec.derive_private_key(int.from_bytes(secret, "big"), _CURVE)
    return private_key.public_key().public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )


def _generate_ed25519() -> bytes:
    return ed25519.Ed25519PrivateKey.generate().private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )


def _generate_secp256k1() -> bytes:
    private_key = ec.generate_private_key(_CURVE)
    return private_key.private_numbers().private_value.to_bytes(32, "big")


@dataclass(frozen=True)
class PublicKey:
    scheme: KeyScheme
    raw: bytes

    def __post_init__(self) -> None:
        if self.scheme is KeyScheme.ED25519:
            expected = ED25519_PUBLIC_KEY_LENGTH
        else:
            expected = SECP256K1_PUBLIC_KEY_LENGTH
        if len(self.raw) != expected:
            raise ValueError(
                f"{self.scheme.value} public key must be {expected} bytes, got {len(self.raw)}"
            )
        if self.scheme is KeyScheme.SECP256K1:
            # Rejects points that are not on the curve
            ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, self.raw)

    @classmethod
    def from_hex(cls, scheme: KeyScheme, public_hex: str) -> "PublicKey":
        return cls(scheme, bytes.fromhex(public_hex))

    def to_bytes(self) -> bytes:
        """Canonical scheme-specific encoding of the key."""
        return self.raw


@dataclass(frozen=True, repr=False)
class SecretKey:
    """A consensus secret key borrowed from the ledger wallet.

    ed25519 keys are the 32-byte seed, secp256k1 keys the 32-byte
    big-endian scalar.
    """

    scheme: KeyScheme
    raw: bytes

    def __post_init__(self) -> None:
        if self.scheme is KeyScheme.ED25519:
            expected = ED25519_SECRET_KEY_LENGTH
        else:
            expected = SECP256K1_SECRET_KEY_LENGTH
        if len(self.raw) != expected:
            raise ValueError(
                f"{self.scheme.value} secret key must be {expected} bytes, got {len(self.raw)}"
            )
        if self.scheme is KeyScheme.SECP256K1:
            value = int.from_bytes(self.raw, "big")
            if not (1 <= value < _CURVE_ORDER):
                raise ValueError("Secp256k1 secret key out of range.")

    def __repr__(self) -> str:
        return f"SecretKey(scheme={self.scheme.name}, raw=<redacted>)"

    @classmethod
    def generate(cls, scheme: KeyScheme) -> "SecretKey":
        if scheme is KeyScheme.ED25519:
            return cls(scheme, _generate_ed25519())
        return cls(scheme, _generate_secp256k1())

    @classmethod
    def from_hex(cls, scheme: KeyScheme, secret_hex: str) -> "SecretKey":
        return cls(scheme, bytes.fromhex(secret_hex))

    def to_bytes(self) -> bytes:
        return self.raw

    def public_key(self) -> PublicKey:
        if self.scheme is KeyScheme.ED25519:
            return PublicKey(self.scheme, _ed25519_public_bytes(self.raw))
        return PublicKey(self.scheme, _secp256k1_public_bytes(self.raw))
