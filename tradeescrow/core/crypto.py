"""
Party identities.

Sellers, buyers, the owner and the custodian are all named by their raw
Ed25519 public key written as 64 lowercase hex characters. Anything that
holds a PartyKey can sign; anything that holds only the identity string
can check a signature with PartyKey.verify_detached().

Signatures travel as unpadded base64url text so they sit in JSON unchanged.
"""

import base64
import re
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

_IDENTITY_RE = re.compile(r"^[0-9a-f]{64}$")


def is_identity(value) -> bool:
    return isinstance(value, str) and bool(_IDENTITY_RE.match(value))


class PartyKey:
    """The private half of one party's identity."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        raw_public        = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self._identity    = raw_public.hex()

    @classmethod
    def generate(cls) -> "PartyKey":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "PartyKey":
        """Deterministic key for tests and fixtures. seed must be 32 bytes."""
        if len(seed) != 32:
            raise ValueError(f"Ed25519 seed must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_file(cls, path: Path) -> "PartyKey":
        """
        Read an unencrypted PKCS8 PEM key written by save().

        Raises:
            FileNotFoundError: no file at path
            ValueError       : unreadable PEM, or a key of another algorithm
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            loaded = load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"{path} is not a readable PEM private key: {exc}") from exc
        if not isinstance(loaded, Ed25519PrivateKey):
            raise ValueError(f"{path} holds a {type(loaded).__name__}, not an Ed25519 key")
        return cls(loaded)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        ))

    @property
    def identity(self) -> str:
        return self._identity

    def sign(self, data: bytes) -> str:
        signature = self._private_key.sign(data)
        return base64.urlsafe_b64encode(signature).rstrip(b"=").decode("ascii")

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, identity: str) -> bool:
        """
        Check signature_b64 over data against identity. Any malformed
        input counts as a failed check, so this returns False rather
        than raising.
        """
        if not is_identity(identity) or not isinstance(signature_b64, str):
            return False
        try:
            signature = base64.urlsafe_b64decode(signature_b64 + "=" * (-len(signature_b64) % 4))
            if len(signature) != 64:
                return False
            Ed25519PublicKey.from_public_bytes(bytes.fromhex(identity)).verify(signature, data)
        except (InvalidSignature, ValueError):
            return False
        return True

    def __repr__(self) -> str:
        return f"PartyKey(identity={self._identity[:16]}...)"
