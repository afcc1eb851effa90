"""Encode and decode P-256 key material and base64url values."""

import base64
import binascii

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
)

from homepush.push.errors import InvalidKey

PUBLIC_KEY_SIZE = 65
PRIVATE_KEY_SIZE = 32

# Group order of P-256; valid private scalars are in [1, n - 1].
_P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551


def b64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64, with or without padding.

    Raises:
        InvalidKey: If the value contains characters outside
            the base64url alphabet.
    """
    stripped = value.strip().rstrip("=")
    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = f"not valid base64url: {exc}"
        raise InvalidKey(msg) from exc


def decode_public_key(data: bytes) -> ec.EllipticCurvePublicKey:
    """Load an uncompressed SEC1 point on P-256."""
    if len(data) != PUBLIC_KEY_SIZE or data[0] != 0x04:
        msg = f"expected {PUBLIC_KEY_SIZE}-byte uncompressed point, got {len(data)} bytes"
        raise InvalidKey(msg)
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)
    except ValueError as exc:
        raise InvalidKey("point is not on P-256") from exc


def encode_public_key(key: ec.EllipticCurvePublicKey) -> bytes:
    """Uncompressed SEC1 point (0x04 || x || y)."""
    return key.public_bytes(
        encoding=Encoding.X962,
        format=PublicFormat.UncompressedPoint,
    )


def decode_private_key(data: bytes) -> ec.EllipticCurvePrivateKey:
    """Load a raw big-endian P-256 scalar."""
    if len(data) != PRIVATE_KEY_SIZE:
        msg = f"expected {PRIVATE_KEY_SIZE}-byte scalar, got {len(data)} bytes"
        raise InvalidKey(msg)
    value = int.from_bytes(data, "big")
    if not 0 < value < _P256_ORDER:
        raise InvalidKey("private scalar out of range")
    try:
        return ec.derive_private_key(value, ec.SECP256R1())
    except ValueError as exc:
        raise InvalidKey("private scalar rejected") from exc


def encode_private_key(key: ec.EllipticCurvePrivateKey) -> bytes:
    """Raw 32-byte big-endian scalar."""
    return key.private_numbers().private_value.to_bytes(PRIVATE_KEY_SIZE, "big")
