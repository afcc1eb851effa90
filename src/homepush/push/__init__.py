from homepush.push.dispatcher import PushDispatcher, extract_origin
from homepush.push.ece import PayloadEncryptor, decrypt_payload
from homepush.push.errors import (
    CryptoFailure,
    EndpointRejected,
    InvalidEndpoint,
    InvalidKey,
    PayloadTooLarge,
    PushError,
    Transport,
)
from homepush.push.models import (
    DeliveryReport,
    PushOutcome,
    Subscription,
    VapidIdentity,
)
from homepush.push.vapid import sign

__all__ = [
    "CryptoFailure",
    "DeliveryReport",
    "EndpointRejected",
    "InvalidEndpoint",
    "InvalidKey",
    "PayloadEncryptor",
    "PayloadTooLarge",
    "PushDispatcher",
    "PushError",
    "PushOutcome",
    "Subscription",
    "Transport",
    "VapidIdentity",
    "decrypt_payload",
    "extract_origin",
    "sign",
]
