"""Typed failures for Web Push delivery."""


class PushError(Exception):
    """Base class for every per-subscriber delivery failure."""


class InvalidKey(PushError, ValueError):
    """Malformed or out-of-range key material.

    Raised for subscriber points that are not on P-256 or have the
    wrong length, auth secrets of the wrong size, and VAPID private
    scalars that do not decode. Never worth retrying.
    """


class CryptoFailure(PushError):
    """A cryptographic primitive (HKDF, ECDH, AES-GCM) failed."""


class PayloadTooLarge(PushError):
    """Plaintext does not fit a single push message record."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"payload of {size} bytes exceeds {limit} bytes")
        self.size = size
        self.limit = limit


class InvalidEndpoint(PushError, ValueError):
    """Subscription endpoint has no usable origin."""


class EndpointRejected(PushError):
    """Push service answered with a non-2xx status."""

    def __init__(self, status: int, body: str = "") -> None:
        super().__init__(f"push endpoint returned {status}: {body}")
        self.status = status
        self.body = body

    @property
    def is_permanent(self) -> bool:
        """Subscription is gone (404/410) and can be dropped."""
        return self.status in (404, 410)

    @property
    def is_retryable(self) -> bool:
        """Rate limited or server side trouble; try next cycle."""
        return self.status == 429 or self.status >= 500


class Transport(PushError):
    """Network-level failure: DNS, TLS, timeout, connection reset."""
