"""Type definitions for JWK records and public key resolution."""

from typing import Protocol

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from pydantic import BaseModel

KEY_TYPE_RSA = "RSA"
KEY_USE_SIGNATURE = "sig"
KEY_USE_ENCRYPTION = "enc"


class JWKEntry(BaseModel):
    """Single RSA entry of a JSON Web Key Set (RFC 7517)."""

    kid: str = ""
    kty: str = ""
    use: str = ""
    alg: str | None = None
    n: str = ""
    e: str = ""


class JWKSet(BaseModel):
    """JSON Web Key Set as served by the broker."""

    keys: list[JWKEntry]


class PublicKeyProvider(Protocol):
    """Anything that can resolve a key id to an RSA verification key."""

    def lookup(self, key_id: str) -> RSAPublicKey:
        """Return the public key for ``key_id`` or raise."""
        ...
