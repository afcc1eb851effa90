"""Value types shared by the push subsystem."""

from dataclasses import dataclass, field

from cryptography.hazmat.primitives.asymmetric import ec

from homepush.push.errors import EndpointRejected, InvalidKey, PushError
from homepush.push.keys import (
    b64url_decode,
    decode_private_key,
    decode_public_key,
    encode_public_key,
)


@dataclass(frozen=True)
class Subscription:
    """A browser-issued Web Push subscription."""

    endpoint: str
    p256dh: str
    auth: str


@dataclass(frozen=True)
class VapidIdentity:
    """Application server identity used to sign VAPID tokens.

    Both keys are base64url strings: the public key is the
    uncompressed point handed to browsers as the
    applicationServerKey, the private key the raw scalar.
    """

    subject: str
    public_key: str
    private_key: str = field(repr=False)

    def signing_key(self) -> ec.EllipticCurvePrivateKey:
        """Decode the private scalar for signing."""
        return decode_private_key(b64url_decode(self.private_key))

    def verify(self) -> "VapidIdentity":
        """Check that the public key belongs to the private key.

        Returns self so loaders can chain it.
        """
        derived = encode_public_key(self.signing_key().public_key())
        configured = encode_public_key(decode_public_key(b64url_decode(self.public_key)))
        if derived != configured:
            raise InvalidKey("VAPID public key does not match private key")
        return self


@dataclass
class PushOutcome:
    """Result of delivering one message to one subscription."""

    endpoint: str
    error: PushError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def gone(self) -> bool:
        """Push service reported the subscription as permanently gone."""
        return isinstance(self.error, EndpointRejected) and self.error.is_permanent


@dataclass
class DeliveryReport:
    """Aggregate counts for a batch send."""

    total: int = 0
    delivered: int = 0
    gone: list[str] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: list[PushOutcome]) -> "DeliveryReport":
        return cls(
            total=len(outcomes),
            delivered=sum(1 for o in outcomes if o.ok),
            gone=[o.endpoint for o in outcomes if o.gone],
        )
