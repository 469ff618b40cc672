"""Password-based AES-GCM envelope for exports and per-field credential encryption.

Key derivation is PBKDF2-HMAC-SHA256 with a 256-bit output. Every ``encrypt``
call draws a fresh salt and IV, so encrypting the same payload twice never
produces the same envelope. Wrong passwords and tampered ciphertext both raise
``DecryptionError`` with the same message.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import re
import secrets
import string
from dataclasses import dataclass
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from checkin_tracker.errors import DecryptionError

logger = logging.getLogger(__name__)

ALGORITHM = "AES-GCM"
KEY_LENGTH = 32  # 256-bit
SALT_BYTES = 16
IV_BYTES = 12
DEFAULT_ITERATIONS = 100_000

DECRYPTION_FAILED = "[Decryption Failed]"

_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(data: Any) -> bytes:
    if not isinstance(data, str):
        raise ValueError("expected base64 string")
    return base64.b64decode(data, validate=True)


@dataclass(frozen=True)
class Envelope:
    """Self-describing encrypted payload. ``to_dict`` is the on-disk shape."""

    salt: bytes
    iv: bytes
    ciphertext: bytes
    algorithm: str = ALGORITHM
    iterations: int = DEFAULT_ITERATIONS

    def to_dict(self) -> dict:
        return {
            "salt": _b64(self.salt),
            "iv": _b64(self.iv),
            "data": _b64(self.ciphertext),
            "algorithm": self.algorithm,
            "iterations": self.iterations,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "Envelope":
        """Decode the wire shape; any malformation is a DecryptionError."""
        if not isinstance(raw, dict):
            raise DecryptionError()
        try:
            data = raw.get("data", raw.get("ciphertext"))
            iterations = raw.get("iterations", DEFAULT_ITERATIONS)
            if not isinstance(iterations, int) or isinstance(iterations, bool) or iterations <= 0:
                raise ValueError("bad iterations")
            return cls(
                salt=_unb64(raw.get("salt")),
                iv=_unb64(raw.get("iv")),
                ciphertext=_unb64(data),
                algorithm=str(raw.get("algorithm", ALGORITHM)),
                iterations=iterations,
            )
        except (ValueError, binascii.Error) as exc:
            raise DecryptionError() from exc


def is_envelope(raw: Any) -> bool:
    """Encrypted exports are recognised by their ``algorithm`` field."""
    return isinstance(raw, dict) and "algorithm" in raw


class CryptoEnvelope:
    """Stateless encryption service. Never stores passwords or derived keys."""

    def __init__(self, iterations: int = DEFAULT_ITERATIONS):
        if iterations <= 0:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    # ── key derivation ──

    def derive_key(self, password: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=iterations or self.iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    @staticmethod
    def generate_salt() -> bytes:
        return secrets.token_bytes(SALT_BYTES)

    @staticmethod
    def generate_iv() -> bytes:
        return secrets.token_bytes(IV_BYTES)

    # ── envelope ──

    def encrypt(self, payload: Any, password: str) -> Envelope:
        """Serialize ``payload`` as JSON and seal it under ``password``."""
        plaintext = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        salt = self.generate_salt()
        iv = self.generate_iv()
        key = self.derive_key(password, salt)
        ciphertext = AESGCM(key).encrypt(iv, plaintext, None)
        return Envelope(salt=salt, iv=iv, ciphertext=ciphertext, algorithm=ALGORITHM, iterations=self.iterations)

    def decrypt(self, envelope: Envelope | dict, password: str) -> Any:
        if not isinstance(envelope, Envelope):
            envelope = Envelope.from_dict(envelope)
        if envelope.algorithm != ALGORITHM or len(envelope.iv) < IV_BYTES:
            raise DecryptionError()
        try:
            key = self.derive_key(password, envelope.salt, envelope.iterations)
            plaintext = AESGCM(key).decrypt(envelope.iv, envelope.ciphertext, None)
            return json.loads(plaintext.decode("utf-8"))
        except (InvalidTag, ValueError, UnicodeDecodeError) as exc:
            # json.JSONDecodeError is a ValueError subclass
            raise DecryptionError() from exc

    # ── verification hashes ──

    @staticmethod
    def hash_password(password: str) -> str:
        """One-way SHA-256 digest, base64. For verification only, never a key."""
        return _b64(hashlib.sha256(password.encode("utf-8")).digest())

    def verify_password(self, password: str, hashed: str) -> bool:
        return hmac.compare_digest(self.hash_password(password), hashed or "")

    # ── field-level helpers ──

    def encrypt_field(self, value: Any, password: str) -> Any:
        if not value:
            return ""
        return self.encrypt({"value": value}, password).to_dict()

    def decrypt_field(self, sealed: Any, password: str) -> Any:
        """Open one field. Failures become the DECRYPTION_FAILED sentinel."""
        if not sealed:
            return ""
        try:
            opened = self.decrypt(sealed, password)
        except DecryptionError:
            logger.warning("Field decryption failed; substituting sentinel")
            return DECRYPTION_FAILED
        if not isinstance(opened, dict):
            return DECRYPTION_FAILED
        return opened.get("value") or ""

    def encrypt_credentials(self, credentials: list[dict], password: str) -> list[dict]:
        sealed = []
        for cred in credentials:
            sealed.append({
                **cred,
                "email": self.encrypt_field(cred.get("email"), password),
                "password": self.encrypt_field(cred.get("password"), password),
                "notes": self.encrypt_field(cred.get("notes"), password) if cred.get("notes") else "",
                "customFields": [
                    {**f, "value": self.encrypt_field(f.get("value"), password)}
                    for f in cred.get("customFields") or []
                ],
            })
        return sealed

    def decrypt_credentials(self, credentials: list[dict], password: str) -> list[dict]:
        """Reverse of encrypt_credentials. A bad field never blocks its siblings."""
        opened = []
        for cred in credentials:
            opened.append({
                **cred,
                "email": self.decrypt_field(cred.get("email"), password),
                "password": self.decrypt_field(cred.get("password"), password),
                "notes": self.decrypt_field(cred.get("notes"), password) if cred.get("notes") else "",
                "customFields": [
                    {**f, "value": self.decrypt_field(f.get("value"), password)}
                    for f in cred.get("customFields") or []
                ],
            })
        return opened


def generate_password(
    length: int = 16,
    lowercase: bool = True,
    uppercase: bool = True,
    digits: bool = True,
    symbols: bool = True,
) -> str:
    """Cryptographically random password from the enabled character classes."""
    if length <= 0:
        return ""
    charset = ""
    if lowercase:
        charset += string.ascii_lowercase
    if uppercase:
        charset += string.ascii_uppercase
    if digits:
        charset += string.digits
    if symbols:
        charset += _SYMBOLS
    if not charset:
        charset = string.ascii_lowercase
    return "".join(secrets.choice(charset) for _ in range(length))


_STRENGTH_LABELS = {
    0: "Empty",
    1: "Very Weak",
    2: "Weak",
    3: "Weak",
    4: "Moderate",
    5: "Good",
    6: "Strong",
    7: "Very Strong",
}


def password_strength(password: Optional[str]) -> tuple[int, str]:
    """Score 0..7 from length and character variety, with its label."""
    if not password:
        return 0, "Empty"
    score = 0
    score += len(password) >= 8
    score += len(password) >= 12
    score += len(password) >= 16
    score += bool(re.search(r"[a-z]", password))
    score += bool(re.search(r"[A-Z]", password))
    score += bool(re.search(r"[0-9]", password))
    score += bool(re.search(r"[^a-zA-Z0-9]", password))
    return score, _STRENGTH_LABELS[score]
