"""Tests for VAPID token signing and key management."""

import json
import time

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    encode_dss_signature,
)

from homepush.push.errors import InvalidKey
from homepush.push.keys import (
    b64url_decode,
    b64url_encode,
    decode_public_key,
    encode_private_key,
)
from homepush.push.models import VapidIdentity
from homepush.push.vapid import (
    generate_vapid_keys,
    load_or_create_vapid_keys,
    load_vapid_identity,
    sign,
    vapid_authorization,
)

AUD = "https://fcm.googleapis.com"
SUB = "mailto:ops@example.com"


def _verify(token: str, public_key: ec.EllipticCurvePublicKey) -> None:
    header_b64, payload_b64, sig_b64 = token.split(".")
    raw = b64url_decode(sig_b64)
    der = encode_dss_signature(
        int.from_bytes(raw[:32], "big"),
        int.from_bytes(raw[32:], "big"),
    )
    public_key.verify(
        der,
        f"{header_b64}.{payload_b64}".encode(),
        ec.ECDSA(hashes.SHA256()),
    )


@pytest.fixture
def key():
    return ec.generate_private_key(ec.SECP256R1())


class TestSign:
    def test_three_segments_and_raw_signature(self, key):
        token = sign(AUD, SUB, key)
        parts = token.split(".")
        assert len(parts) == 3
        assert len(b64url_decode(parts[2])) == 64
        assert "=" not in token

    def test_header_and_claims(self, key):
        before = int(time.time())
        token = sign(AUD, SUB, key)
        header_b64, payload_b64, _ = token.split(".")

        assert json.loads(b64url_decode(header_b64)) == {"alg": "ES256"}
        claims = json.loads(b64url_decode(payload_b64))
        assert set(claims) == {"aud", "exp", "sub"}
        assert claims["aud"] == AUD
        assert claims["sub"] == SUB
        assert before + 3600 <= claims["exp"] <= int(time.time()) + 3600

    def test_fixed_issue_time(self, key):
        token = sign(AUD, SUB, key, now=1_700_000_000)
        claims = json.loads(b64url_decode(token.split(".")[1]))
        assert claims["exp"] == 1_700_003_600

    def test_signature_verifies(self, key):
        _verify(sign(AUD, SUB, key), key.public_key())

    def test_signature_fails_for_other_key(self, key):
        other = ec.generate_private_key(ec.SECP256R1())
        with pytest.raises(InvalidSignature):
            _verify(sign(AUD, SUB, key), other.public_key())

    def test_accepts_raw_scalar(self, key):
        _verify(sign(AUD, SUB, encode_private_key(key)), key.public_key())

    def test_bad_raw_scalar(self):
        with pytest.raises(InvalidKey):
            sign(AUD, SUB, b"\x00" * 32)


def test_authorization_header():
    assert vapid_authorization("a.b.c", "KEY") == "vapid t=a.b.c, k=KEY"


class TestKeyProvisioning:
    def test_generated_pair_matches(self):
        public_key, private_key = generate_vapid_keys()
        assert len(b64url_decode(public_key)) == 65
        assert len(b64url_decode(private_key)) == 32
        identity = VapidIdentity(SUB, public_key, private_key).verify()
        _verify(
            sign(AUD, SUB, identity.signing_key()),
            decode_public_key(b64url_decode(public_key)),
        )

    def test_load_or_create_persists(self, tmp_path):
        first = load_or_create_vapid_keys(tmp_path)
        second = load_or_create_vapid_keys(tmp_path)
        assert first == second
        assert (tmp_path / "vapid_keys.json").exists()

    def test_corrupt_key_file(self, tmp_path):
        (tmp_path / "vapid_keys.json").write_text("{}")
        with pytest.raises(InvalidKey):
            load_or_create_vapid_keys(tmp_path)


class TestLoadIdentity:
    def test_configured_keys_win(self, tmp_path):
        public_key, private_key = generate_vapid_keys()
        identity = load_vapid_identity(SUB, public_key, private_key, tmp_path)
        assert identity.public_key == public_key
        assert not (tmp_path / "vapid_keys.json").exists()

    def test_falls_back_to_state_dir(self, tmp_path):
        identity = load_vapid_identity(SUB, "", "", tmp_path)
        stored = json.loads((tmp_path / "vapid_keys.json").read_text())
        assert identity.public_key == stored["public_key"]
        assert identity.subject == SUB

    def test_half_configured(self, tmp_path):
        public_key, _ = generate_vapid_keys()
        with pytest.raises(InvalidKey):
            load_vapid_identity(SUB, public_key, "", tmp_path)

    def test_mismatched_pair(self, tmp_path):
        public_key, _ = generate_vapid_keys()
        _, private_key = generate_vapid_keys()
        with pytest.raises(InvalidKey, match="does not match"):
            load_vapid_identity(SUB, public_key, private_key, tmp_path)

    def test_padding_is_normalized(self, tmp_path):
        public_key, private_key = generate_vapid_keys()
        identity = load_vapid_identity(SUB, public_key + "=", private_key, tmp_path)
        assert identity.public_key == b64url_encode(b64url_decode(public_key))

    def test_private_key_hidden_from_repr(self):
        public_key, private_key = generate_vapid_keys()
        assert private_key not in repr(VapidIdentity(SUB, public_key, private_key))
