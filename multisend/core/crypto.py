"""
multisend/core/crypto.py

Event signing for the MultiSend event log.

A deployment may configure an Ed25519 key so that every committed event
record is signed by the engine operator. Observers holding only the
public key hex can then check that the event stream they received is the
one the engine produced.

Key contracts:
    public_key_hex          : @property, 64-char lowercase hex
    sign(data)              : bytes -> base64url str, no padding
    verify_detached(...)    : @staticmethod, needs only a public key hex
"""

import base64
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


class Ed25519KeyManager:
    """
    Ed25519 key manager for signing event records.

        Ed25519KeyManager.generate()                        -> new random key
        Ed25519KeyManager.from_file(path)                   -> load PEM private key
        Ed25519KeyManager.verify_detached(data, sig, hex)   -> no instance needed

        key.public_key_hex          (@property)
        key.sign(data: bytes)       -> base64url str
        key.save(path)              -> write PEM private key
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key:    Ed25519PrivateKey = private_key
        self._public_key:     Ed25519PublicKey  = private_key.public_key()
        self._public_key_hex: str = (
            self._public_key
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        """Generate a new random Ed25519 key pair."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load an Ed25519 private key from a PEM file.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file is not a valid Ed25519 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        private_key = load_pem_private_key(path.read_bytes(), password=None)
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(
                f"Key file {path} does not contain an Ed25519 private key"
            )
        return cls(private_key)

    # ── Public Key ────────────────────────────────────────────

    @property
    def public_key_hex(self) -> str:
        """64-character lowercase hex of the raw 32-byte public key."""
        return self._public_key_hex

    # ── Signing ───────────────────────────────────────────────

    def sign(self, data: bytes) -> str:
        """Sign data. Returns base64url, no '=' padding (86 characters)."""
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    @staticmethod
    def verify_detached(
        data:           bytes,
        signature_b64:  str,
        public_key_hex: str,
    ) -> bool:
        """
        Verify an Ed25519 signature using only a public key hex string.

        Returns False for any failure: wrong key, bad encoding, wrong
        length, corrupted signature. Never raises.
        """
        if not isinstance(public_key_hex, str) or len(public_key_hex) != 64:
            return False
        try:
            pub = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))

            padding    = 4 - len(signature_b64) % 4
            padded_sig = signature_b64 + "=" * (padding % 4)
            raw_sig    = base64.urlsafe_b64decode(padded_sig)
            if len(raw_sig) != 64:
                return False

            pub.verify(raw_sig, data)
            return True
        except (ValueError, TypeError, InvalidSignature):
            return False

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """Write the private key as PEM, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pem = self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        )
        path.write_bytes(pem)

    def __repr__(self) -> str:
        return (
            f"Ed25519KeyManager(public_key_hex={self._public_key_hex[:16]}...)"
        )
