"""Tests for the AES-GCM envelope, field helpers and password utilities."""

import base64
import string

import pytest

from checkin_tracker.crypto import (
    ALGORITHM,
    DECRYPTION_FAILED,
    CryptoEnvelope,
    Envelope,
    generate_password,
    is_envelope,
    password_strength,
)
from checkin_tracker.errors import DecryptionError


def _flip(b64: str) -> str:
    raw = bytearray(base64.b64decode(b64))
    raw[-1] ^= 0x01
    return base64.b64encode(bytes(raw)).decode()


class TestKeyDerivation:
    def test_deterministic(self, crypto):
        salt = b"\x00" * 16
        assert crypto.derive_key("pw", salt) == crypto.derive_key("pw", salt)
        assert len(crypto.derive_key("pw", salt)) == 32

    def test_salt_and_password_matter(self, crypto):
        salt = b"\x00" * 16
        base = crypto.derive_key("pw", salt)
        assert crypto.derive_key("pw2", salt) != base
        assert crypto.derive_key("pw", b"\x01" * 16) != base

    def test_rejects_non_positive_iterations(self):
        with pytest.raises(ValueError):
            CryptoEnvelope(0)


class TestEnvelope:
    def test_round_trip(self, crypto):
        payload = {"sites": [{"name": "Bank", "emoji": "💰"}], "count": 3}
        assert crypto.decrypt(crypto.encrypt(payload, "secret"), "secret") == payload

    def test_wire_shape(self, crypto):
        d = crypto.encrypt({"a": 1}, "pw").to_dict()
        assert set(d) == {"salt", "iv", "data", "algorithm", "iterations"}
        assert d["algorithm"] == ALGORITHM
        assert len(base64.b64decode(d["salt"])) == 16
        assert len(base64.b64decode(d["iv"])) == 12

    def test_fresh_salt_and_iv(self, crypto):
        a = crypto.encrypt({"a": 1}, "pw")
        b = crypto.encrypt({"a": 1}, "pw")
        assert a.salt != b.salt
        assert a.iv != b.iv
        assert a.ciphertext != b.ciphertext

    def test_decrypt_from_dict(self, crypto):
        sealed = crypto.encrypt(["x"], "pw").to_dict()
        assert crypto.decrypt(sealed, "pw") == ["x"]

    def test_accepts_ciphertext_alias(self, crypto):
        sealed = crypto.encrypt({"a": 1}, "pw").to_dict()
        sealed["ciphertext"] = sealed.pop("data")
        assert crypto.decrypt(sealed, "pw") == {"a": 1}

    def test_iterations_travel_with_envelope(self):
        sealed = CryptoEnvelope(1_500).encrypt({"a": 1}, "pw").to_dict()
        assert sealed["iterations"] == 1_500
        assert CryptoEnvelope(1_000).decrypt(sealed, "pw") == {"a": 1}

    def test_wrong_password(self, crypto):
        sealed = crypto.encrypt({"a": 1}, "right")
        with pytest.raises(DecryptionError, match="incorrect password or corrupted data"):
            crypto.decrypt(sealed, "wrong")

    @pytest.mark.parametrize("field", ["data", "iv", "salt"])
    def test_tampering_detected(self, crypto, field):
        sealed = crypto.encrypt({"a": 1}, "pw").to_dict()
        sealed[field] = _flip(sealed[field])
        with pytest.raises(DecryptionError):
            crypto.decrypt(sealed, "pw")

    @pytest.mark.parametrize("bad", [
        None,
        "not a dict",
        {"algorithm": "AES-GCM"},
        {"algorithm": "AES-GCM", "salt": "!!", "iv": "AAAA", "data": "AAAA"},
        {"algorithm": "AES-GCM", "salt": "AAAA", "iv": "AAAA", "data": "AAAA", "iterations": -1},
    ])
    def test_malformed_envelope(self, crypto, bad):
        with pytest.raises(DecryptionError):
            crypto.decrypt(bad, "pw")

    def test_unknown_algorithm(self, crypto):
        sealed = crypto.encrypt({"a": 1}, "pw").to_dict()
        sealed["algorithm"] = "ROT13"
        with pytest.raises(DecryptionError):
            crypto.decrypt(sealed, "pw")

    def test_envelope_is_frozen(self, crypto):
        env = crypto.encrypt({}, "pw")
        with pytest.raises(AttributeError):
            env.salt = b""  # type: ignore[misc]

    def test_from_dict_round_trip(self, crypto):
        env = crypto.encrypt({"a": 1}, "pw")
        assert Envelope.from_dict(env.to_dict()) == env

    def test_is_envelope(self, crypto):
        assert is_envelope(crypto.encrypt({}, "pw").to_dict())
        assert not is_envelope({"sites": []})
        assert not is_envelope([])


class TestPasswordHash:
    def test_verify(self, crypto):
        hashed = crypto.hash_password("pw")
        assert crypto.verify_password("pw", hashed)
        assert not crypto.verify_password("PW", hashed)
        assert not crypto.verify_password("pw", "")

    def test_hash_is_stable_base64(self, crypto):
        assert crypto.hash_password("pw") == crypto.hash_password("pw")
        assert len(base64.b64decode(crypto.hash_password("pw"))) == 32


class TestFieldEncryption:
    def test_field_round_trip(self, crypto):
        sealed = crypto.encrypt_field("hunter2", "pw")
        assert isinstance(sealed, dict)
        assert crypto.decrypt_field(sealed, "pw") == "hunter2"

    def test_empty_field_passthrough(self, crypto):
        assert crypto.encrypt_field("", "pw") == ""
        assert crypto.decrypt_field("", "pw") == ""

    def test_bad_field_becomes_sentinel(self, crypto):
        sealed = crypto.encrypt_field("hunter2", "pw")
        assert crypto.decrypt_field(sealed, "wrong") == DECRYPTION_FAILED

    def test_credentials_round_trip(self, crypto):
        creds = [{
            "id": "c1",
            "label": "Main",
            "email": "me@example.com",
            "password": "hunter2",
            "notes": "",
            "customFields": [{"id": "f1", "name": "PIN", "value": "1234"}],
        }]
        sealed = crypto.encrypt_credentials(creds, "pw")
        assert sealed[0]["label"] == "Main"
        assert isinstance(sealed[0]["email"], dict)
        assert isinstance(sealed[0]["customFields"][0]["value"], dict)
        assert sealed[0]["notes"] == ""
        assert crypto.decrypt_credentials(sealed, "pw") == creds

    def test_one_bad_field_does_not_block_others(self, crypto):
        sealed = crypto.encrypt_credentials([{"id": "c1", "email": "e@x", "password": "p"}], "pw")
        sealed[0]["password"] = crypto.encrypt_field("p", "other")
        opened = crypto.decrypt_credentials(sealed, "pw")
        assert opened[0]["email"] == "e@x"
        assert opened[0]["password"] == DECRYPTION_FAILED


class TestGeneratePassword:
    def test_default_length(self):
        assert len(generate_password()) == 16

    def test_digits_only(self):
        pw = generate_password(40, lowercase=False, uppercase=False, digits=True, symbols=False)
        assert len(pw) == 40
        assert set(pw) <= set(string.digits)

    def test_all_disabled_falls_back_to_lowercase(self):
        pw = generate_password(20, lowercase=False, uppercase=False, digits=False, symbols=False)
        assert set(pw) <= set(string.ascii_lowercase)

    def test_zero_length(self):
        assert generate_password(0) == ""

    def test_not_repeated(self):
        assert generate_password(32) != generate_password(32)


class TestPasswordStrength:
    @pytest.mark.parametrize("password,score,label", [
        ("", 0, "Empty"),
        ("abc", 1, "Very Weak"),
        ("abcdefgh", 2, "Weak"),
        ("Abcdefgh", 3, "Weak"),
        ("Abcdefg1", 4, "Moderate"),
        ("Abcdefg1!", 5, "Good"),
        ("Abcdefg1!xyz", 6, "Strong"),
        ("Abcdefg1!xyz7890", 7, "Very Strong"),
    ])
    def test_scores(self, password, score, label):
        assert password_strength(password) == (score, label)
