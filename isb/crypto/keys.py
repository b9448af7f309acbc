"""Random tokens, PEM key loading and JWK conversion."""

import base64
import binascii
import secrets
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import (
    RSAPrivateKey,
    RSAPublicKey,
    RSAPublicNumbers,
)

from isb.core.errors import KeyFormatError
from isb.crypto.types import KEY_TYPE_RSA, KEY_USE_SIGNATURE, JWKEntry


def create_random_token(size: int) -> str:
    """Return ``size`` random bytes as padded URL-safe base64."""
    return base64.urlsafe_b64encode(secrets.token_bytes(size)).decode("ascii")


def load_private_key(data: bytes | str) -> RSAPrivateKey:
    """Load a PEM-encoded RSA private key (PKCS#1 or PKCS#8)."""
    if isinstance(data, str):
        data = data.encode()
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as exc:
        raise KeyFormatError("unable to decode private key data") from exc
    if not isinstance(key, RSAPrivateKey):
        raise KeyFormatError("private key is not an RSA key")
    return key


def load_private_key_file(path: str | Path) -> RSAPrivateKey:
    """Read and load an RSA private key from a PEM file."""
    return load_private_key(Path(path).read_bytes())


def _int_to_base64url(value: int) -> str:
    """Encode an integer as base64url without padding."""
    byte_length = (value.bit_length() + 7) // 8
    raw = value.to_bytes(byte_length, byteorder="big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def base64url_decode(value: str) -> bytes:
    """Strictly decode unpadded base64url; raises ValueError on bad input."""
    if "=" in value:
        raise ValueError("base64url value must not be padded")
    padded = value + "=" * (-len(value) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


def _base64url_to_int(value: str) -> int:
    """Decode an unpadded base64url unsigned big-endian integer."""
    try:
        raw = base64url_decode(value)
    except (binascii.Error, ValueError) as exc:
        raise KeyFormatError("key parameter is not valid base64url") from exc
    return int.from_bytes(raw, byteorder="big")


def public_key_to_jwk(
    public_key: RSAPublicKey,
    kid: str,
    use: str = KEY_USE_SIGNATURE,
    alg: str | None = "RS256",
) -> JWKEntry:
    """Convert an RSA public key to a JWK entry."""
    numbers = public_key.public_numbers()
    return JWKEntry(
        kid=kid,
        kty=KEY_TYPE_RSA,
        use=use,
        alg=alg,
        n=_int_to_base64url(numbers.n),
        e=_int_to_base64url(numbers.e),
    )


def jwk_to_public_key(entry: JWKEntry) -> RSAPublicKey:
    """Decode a JWK entry into an RSA signature verification key.

    Only ``kty=RSA`` with ``use=sig`` is accepted; anything else is
    rejected rather than guessed at.
    """
    if entry.kty != KEY_TYPE_RSA:
        raise KeyFormatError(f"key type '{entry.kty}' not supported")
    if entry.use != KEY_USE_SIGNATURE:
        raise KeyFormatError(f"key usage '{entry.use}' not supported")
    modulus = _base64url_to_int(entry.n)
    exponent = _base64url_to_int(entry.e)
    try:
        return RSAPublicNumbers(e=exponent, n=modulus).public_key()
    except ValueError as exc:
        raise KeyFormatError(f"invalid RSA public key '{entry.kid}'") from exc
