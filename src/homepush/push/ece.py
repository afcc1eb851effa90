"""RFC 8291 message encryption (aes128gcm content encoding).

A push message is a single aes128gcm record. The body starts with
a header carrying the per-message salt, the record size and the
application server's ephemeral public key, followed by the
AES-128-GCM ciphertext:

    salt(16) | rs(4, big-endian) | idlen(1) | keyid(65) | ciphertext

Key derivation chains two HKDF-SHA256 rounds. The first mixes the
ECDH shared secret with the subscriber's auth secret; the second
uses the random salt to derive the content-encryption key and
nonce.
"""

import secrets
from dataclasses import dataclass
from typing import Protocol

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from homepush.push.errors import CryptoFailure, InvalidKey, PayloadTooLarge
from homepush.push.keys import (
    PUBLIC_KEY_SIZE,
    decode_public_key,
    encode_public_key,
)

logger = structlog.get_logger()

RECORD_SIZE = 4096
SALT_SIZE = 16
AUTH_SECRET_SIZE = 16
TAG_SIZE = 16
HEADER_SIZE = SALT_SIZE + 4 + 1 + PUBLIC_KEY_SIZE

# Push services cap the whole body at 4096 bytes.
MAX_PLAINTEXT_BYTES = RECORD_SIZE - HEADER_SIZE - 1 - TAG_SIZE

_KEY_INFO = b"WebPush: info\x00"
_CEK_INFO = b"Content-Encoding: aes128gcm\x00"
_NONCE_INFO = b"Content-Encoding: nonce\x00"
_LAST_RECORD = b"\x02"


class RandomSource(Protocol):
    """Source of the per-message salt and ephemeral key."""

    def token_bytes(self, n: int) -> bytes: ...

    def generate_private_key(self) -> ec.EllipticCurvePrivateKey: ...


class SystemRandomSource:
    """Cryptographically secure randomness from the OS."""

    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)

    def generate_private_key(self) -> ec.EllipticCurvePrivateKey:
        return ec.generate_private_key(ec.SECP256R1())


@dataclass(frozen=True)
class EncryptedPayload:
    """A single aes128gcm record with its header fields."""

    salt: bytes
    key_id: bytes
    ciphertext: bytes
    record_size: int = RECORD_SIZE

    def to_bytes(self) -> bytes:
        """Serialize to the request body sent to the push service."""
        return b"".join(
            [
                self.salt,
                self.record_size.to_bytes(4, "big"),
                bytes([len(self.key_id)]),
                self.key_id,
                self.ciphertext,
            ]
        )

    @classmethod
    def from_bytes(cls, body: bytes) -> "EncryptedPayload":
        """Split a request body into header fields and ciphertext."""
        if len(body) < SALT_SIZE + 5:
            raise CryptoFailure("payload shorter than aes128gcm header")
        idlen = body[SALT_SIZE + 4]
        if idlen != PUBLIC_KEY_SIZE:
            raise CryptoFailure(f"unexpected key id length {idlen}")
        start = SALT_SIZE + 5 + idlen
        if len(body) < start + TAG_SIZE:
            raise CryptoFailure("payload truncated")
        return cls(
            salt=body[:SALT_SIZE],
            record_size=int.from_bytes(body[SALT_SIZE : SALT_SIZE + 4], "big"),
            key_id=body[SALT_SIZE + 5 : start],
            ciphertext=body[start:],
        )


def _hkdf(salt: bytes, ikm: bytes, info: bytes, length: int) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    ).derive(ikm)


def _derive_key_and_nonce(
    shared_secret: bytes,
    auth_secret: bytes,
    ua_public: bytes,
    as_public: bytes,
    salt: bytes,
) -> tuple[bytes, bytes]:
    """Two-round HKDF from the ECDH secret to (cek, nonce)."""
    try:
        ikm = _hkdf(auth_secret, shared_secret, _KEY_INFO + ua_public + as_public, 32)
        cek = _hkdf(salt, ikm, _CEK_INFO, 16)
        nonce = _hkdf(salt, ikm, _NONCE_INFO, 12)
    except (ValueError, TypeError) as exc:
        raise CryptoFailure(f"HKDF failed: {exc}") from exc
    return cek, nonce


def _check_auth_secret(auth_secret: bytes) -> None:
    if len(auth_secret) != AUTH_SECRET_SIZE:
        msg = f"auth secret must be {AUTH_SECRET_SIZE} bytes, got {len(auth_secret)}"
        raise InvalidKey(msg)


class PayloadEncryptor:
    """Encrypt push messages for a subscriber.

    Every call draws a fresh ephemeral key pair and salt from the
    random source. Tests substitute a fixed source to reproduce
    known vectors; production uses SystemRandomSource.
    """

    def __init__(self, random_source: RandomSource | None = None) -> None:
        self._random = random_source or SystemRandomSource()

    def encrypt(
        self,
        plaintext: bytes,
        subscriber_public_key: ec.EllipticCurvePublicKey,
        auth_secret: bytes,
    ) -> EncryptedPayload:
        """Encrypt plaintext into a single aes128gcm record.

        Raises:
            InvalidKey: Auth secret is not 16 bytes.
            PayloadTooLarge: Plaintext does not fit one push body.
            CryptoFailure: ECDH, HKDF or AES-GCM failed.
        """
        _check_auth_secret(auth_secret)
        if len(plaintext) > MAX_PLAINTEXT_BYTES:
            raise PayloadTooLarge(len(plaintext), MAX_PLAINTEXT_BYTES)

        ephemeral = self._random.generate_private_key()
        ua_public = encode_public_key(subscriber_public_key)
        as_public = encode_public_key(ephemeral.public_key())
        try:
            shared_secret = ephemeral.exchange(ec.ECDH(), subscriber_public_key)
        except ValueError as exc:
            raise CryptoFailure(f"ECDH failed: {exc}") from exc

        salt = self._random.token_bytes(SALT_SIZE)
        cek, nonce = _derive_key_and_nonce(
            shared_secret, auth_secret, ua_public, as_public, salt
        )
        try:
            ciphertext = AESGCM(cek).encrypt(nonce, plaintext + _LAST_RECORD, None)
        except (ValueError, OverflowError) as exc:
            raise CryptoFailure(f"AES-GCM encryption failed: {exc}") from exc

        logger.debug("payload_encrypted", size=len(ciphertext) + HEADER_SIZE)
        return EncryptedPayload(salt=salt, key_id=as_public, ciphertext=ciphertext)


def decrypt_payload(
    body: bytes,
    private_key: ec.EllipticCurvePrivateKey,
    auth_secret: bytes,
) -> bytes:
    """Decrypt a push body as the receiving user agent would.

    Returns the plaintext with the padding delimiter removed.

    Raises:
        InvalidKey: Auth secret or embedded sender key is malformed.
        CryptoFailure: Body is malformed or fails authentication.
    """
    _check_auth_secret(auth_secret)
    payload = EncryptedPayload.from_bytes(body)
    sender_key = decode_public_key(payload.key_id)
    try:
        shared_secret = private_key.exchange(ec.ECDH(), sender_key)
    except ValueError as exc:
        raise CryptoFailure(f"ECDH failed: {exc}") from exc

    cek, nonce = _derive_key_and_nonce(
        shared_secret,
        auth_secret,
        encode_public_key(private_key.public_key()),
        payload.key_id,
        payload.salt,
    )
    try:
        padded = AESGCM(cek).decrypt(nonce, payload.ciphertext, None)
    except InvalidTag as exc:
        raise CryptoFailure("authentication tag mismatch") from exc

    # Padding is zero bytes after the delimiter.
    unpadded = padded.rstrip(b"\x00")
    if not unpadded.endswith(_LAST_RECORD):
        raise CryptoFailure("missing last-record delimiter")
    return unpadded[:-1]
