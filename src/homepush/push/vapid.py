"""VAPID (RFC 8292) tokens and key management for Web Push."""

import json
import time
from pathlib import Path

import structlog
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
)
from py_vapid import Vapid02

from homepush.push.errors import InvalidKey
from homepush.push.keys import (
    b64url_decode,
    b64url_encode,
    decode_private_key,
    encode_private_key,
    encode_public_key,
)
from homepush.push.models import VapidIdentity

logger = structlog.get_logger()

TOKEN_LIFETIME_S = 3600

_HEADER = {"alg": "ES256"}
_KEYS_FILE = "vapid_keys.json"


def _b64_json(obj: dict) -> str:
    return b64url_encode(json.dumps(obj, separators=(",", ":")).encode())


def sign(
    audience: str,
    subject: str,
    private_key: ec.EllipticCurvePrivateKey | bytes,
    *,
    now: float | None = None,
) -> str:
    """Build a signed ES256 JWT for one push service origin.

    Args:
        audience: Origin of the push endpoint (scheme://host[:port]).
        subject: mailto: or https: contact for the operator.
        private_key: VAPID signing key, or its raw 32-byte scalar.
        now: Issue time override (epoch seconds).

    Returns:
        header.payload.signature, each segment base64url. The
        signature is the raw 64-byte r||s pair, not DER.
    """
    if isinstance(private_key, bytes):
        private_key = decode_private_key(private_key)

    issued = int(time.time() if now is None else now)
    claims = {
        "aud": audience,
        "exp": issued + TOKEN_LIFETIME_S,
        "sub": subject,
    }
    signing_input = f"{_b64_json(_HEADER)}.{_b64_json(claims)}"

    der = private_key.sign(signing_input.encode(), ec.ECDSA(hashes.SHA256()))
    r, s = decode_dss_signature(der)
    raw = r.to_bytes(32, "big") + s.to_bytes(32, "big")
    return f"{signing_input}.{b64url_encode(raw)}"


def vapid_authorization(token: str, public_key: str) -> str:
    """Authorization header value for the vapid scheme."""
    return f"vapid t={token}, k={public_key}"


def generate_vapid_keys() -> tuple[str, str]:
    """Generate a fresh P-256 key pair.

    Returns:
        (public_key, private_key) as base64url strings.
    """
    vapid = Vapid02()
    vapid.generate_keys()
    public_key = b64url_encode(encode_public_key(vapid.public_key))
    private_key = b64url_encode(encode_private_key(vapid.private_key))
    return public_key, private_key


def load_or_create_vapid_keys(
    state_dir: str | Path,
) -> tuple[str, str]:
    """Load or auto-generate the VAPID key pair.

    Args:
        state_dir: Directory for persistent state files.

    Returns:
        (public_key, private_key) as base64url strings.
    """
    state_dir = Path(state_dir)
    state_dir.mkdir(parents=True, exist_ok=True)
    json_path = state_dir / _KEYS_FILE

    if json_path.exists():
        try:
            keys = json.loads(json_path.read_text())
            return keys["public_key"], keys["private_key"]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            msg = f"unreadable VAPID key file {json_path}"
            raise InvalidKey(msg) from exc

    public_key, private_key = generate_vapid_keys()
    json_path.write_text(json.dumps({"public_key": public_key, "private_key": private_key}))
    json_path.chmod(0o600)
    logger.info("vapid_keys_generated", path=str(json_path))
    return public_key, private_key


def load_vapid_identity(
    subject: str,
    public_key: str,
    private_key: str,
    state_dir: str | Path,
) -> VapidIdentity:
    """Resolve the process-wide VAPID identity.

    Configured keys win. With neither key configured, a pair is
    loaded from (or generated into) the state directory.

    Raises:
        InvalidKey: Only one key is configured, a key does not
            decode, or the two keys do not form a pair.
    """
    if bool(public_key) != bool(private_key):
        raise InvalidKey("set both VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY, or neither")
    if not public_key:
        public_key, private_key = load_or_create_vapid_keys(state_dir)

    # Round-trip through the codec to reject stray padding or whitespace.
    identity = VapidIdentity(
        subject=subject,
        public_key=b64url_encode(b64url_decode(public_key)),
        private_key=b64url_encode(b64url_decode(private_key)),
    )
    return identity.verify()
