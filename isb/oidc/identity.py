"""Decrypt-then-verify pipeline for broker identity tokens.

The identity token is a compact JWE whose plaintext is a JWS signed by the
broker. Each stage below takes the previous stage's output type, so claims
can only be read from a payload whose signature has already been checked:

    EncryptedToken -> DecryptedPayload -> SignedEnvelope
        -> VerifiedPayload -> Identity
"""

import binascii
import json
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from joserfc import jwe
from joserfc.errors import JoseError
from joserfc.jwk import RSAKey
from pydantic import BaseModel, ConfigDict, ValidationError

from isb.core.errors import (
    ClaimDecodeError,
    DecryptionError,
    MalformedTokenError,
    SignatureVerificationError,
    UnexpectedSignatureCountError,
)
from isb.crypto.keys import base64url_decode
from isb.crypto.signer import SIGNING_ALGORITHM
from isb.crypto.types import PublicKeyProvider
from isb.oidc.types import Identity

JWE_ALGORITHMS = [
    "RSA-OAEP",
    "RSA-OAEP-256",
    "A128CBC-HS256",
    "A256CBC-HS512",
    "A128GCM",
    "A256GCM",
]
JWE_SEGMENTS = 5
JWS_SEGMENTS = 3

_jws = jwt.PyJWS()


class EncryptedToken(BaseModel):
    """Structurally valid compact JWE."""

    model_config = ConfigDict(frozen=True)

    compact: str
    header: dict[str, Any]


class DecryptedPayload(BaseModel):
    """JWE plaintext, expected to be a JWS."""

    model_config = ConfigDict(frozen=True)

    plaintext: bytes


class SignatureBlock(BaseModel):
    """One signature of a JWS with its encoded protected header."""

    model_config = ConfigDict(frozen=True)

    protected: str
    header: dict[str, Any]
    signature: str

    @property
    def key_id(self) -> str:
        return str(self.header.get("kid", ""))


class SignedEnvelope(BaseModel):
    """Parsed JWS in any serialization, not yet verified."""

    model_config = ConfigDict(frozen=True)

    payload: str
    signatures: tuple[SignatureBlock, ...]


class VerifiedPayload(BaseModel):
    """JWS payload whose signature has been verified."""

    model_config = ConfigDict(frozen=True)

    payload: bytes
    key_id: str


def _decode_segment(segment: str, what: str) -> bytes:
    try:
        return base64url_decode(segment)
    except (binascii.Error, ValueError) as exc:
        raise MalformedTokenError(f"{what} is not valid base64url") from exc


def _decode_header(segment: str, what: str) -> dict[str, Any]:
    raw = _decode_segment(segment, what)
    try:
        header = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedTokenError(f"{what} is not valid JSON") from exc
    if not isinstance(header, dict):
        raise MalformedTokenError(f"{what} is not a JSON object")
    return header


def parse_encrypted(token: str) -> EncryptedToken:
    """Parse the compact JWE envelope without decrypting it."""
    parts = token.strip().split(".")
    if len(parts) != JWE_SEGMENTS:
        raise MalformedTokenError("identity token is not a compact JWE")
    header = _decode_header(parts[0], "JWE header")
    for name in ("alg", "enc"):
        if not isinstance(header.get(name), str) or not header[name]:
            raise MalformedTokenError(f"JWE header lacks a valid {name}")
    for segment in parts[1:]:
        _decode_segment(segment, "JWE segment")
    return EncryptedToken(compact=token.strip(), header=header)


def decrypt(token: EncryptedToken, encryption_key: RSAKey) -> DecryptedPayload:
    """Decrypt the JWE with the relying party's private key."""
    try:
        result = jwe.decrypt_compact(
            token.compact, encryption_key, algorithms=JWE_ALGORITHMS
        )
    except (JoseError, ValueError, TypeError, KeyError) as exc:
        raise DecryptionError(f"unable to decrypt identity token: {exc}") from exc
    if result.plaintext is None:
        raise DecryptionError("identity token has no plaintext")
    return DecryptedPayload(plaintext=result.plaintext)


def _parse_signature_block(item: object) -> SignatureBlock:
    if not isinstance(item, dict):
        raise MalformedTokenError("JWS signature entry is not an object")
    protected = item.get("protected", "")
    signature = item.get("signature")
    unprotected = item.get("header", {})
    if not isinstance(protected, str) or not isinstance(signature, str):
        raise MalformedTokenError("JWS signature entry is malformed")
    if not isinstance(unprotected, dict):
        raise MalformedTokenError("JWS unprotected header is not an object")
    header = dict(unprotected)
    if protected:
        header.update(_decode_header(protected, "JWS protected header"))
    _decode_segment(signature, "JWS signature")
    return SignatureBlock(protected=protected, header=header, signature=signature)


def _parse_json_serialization(text: str) -> SignedEnvelope:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedTokenError("JWS is not valid JSON") from exc
    if not isinstance(document, dict) or not isinstance(
        document.get("payload"), str
    ):
        raise MalformedTokenError("JWS JSON serialization lacks a payload")
    payload = document["payload"]
    _decode_segment(payload, "JWS payload")
    if "signatures" in document:
        entries = document["signatures"]
        if not isinstance(entries, list):
            raise MalformedTokenError("JWS signatures is not a list")
        blocks = tuple(_parse_signature_block(entry) for entry in entries)
    elif "signature" in document:
        blocks = (_parse_signature_block(document),)
    else:
        blocks = ()
    return SignedEnvelope(payload=payload, signatures=blocks)


def parse_signed(decrypted: DecryptedPayload) -> SignedEnvelope:
    """Parse the decrypted plaintext as a JWS (compact or JSON)."""
    try:
        text = decrypted.plaintext.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise MalformedTokenError("decrypted payload is not UTF-8") from exc
    if text.startswith("{"):
        return _parse_json_serialization(text)
    parts = text.split(".")
    if len(parts) != JWS_SEGMENTS:
        raise MalformedTokenError("decrypted payload is not a compact JWS")
    protected, payload, signature = parts
    _decode_segment(payload, "JWS payload")
    header = _decode_header(protected, "JWS protected header")
    _decode_segment(signature, "JWS signature")
    block = SignatureBlock(protected=protected, header=header, signature=signature)
    return SignedEnvelope(payload=payload, signatures=(block,))


def single_signature(envelope: SignedEnvelope) -> SignatureBlock:
    """Return the only signature, rejecting zero or several."""
    if len(envelope.signatures) != 1:
        raise UnexpectedSignatureCountError(len(envelope.signatures))
    return envelope.signatures[0]


def verify_signature(
    envelope: SignedEnvelope, key_provider: PublicKeyProvider
) -> VerifiedPayload:
    """Resolve the signing key by kid and verify the single signature."""
    block = single_signature(envelope)
    public_key = key_provider.lookup(block.key_id)
    compact = f"{block.protected}.{envelope.payload}.{block.signature}"
    try:
        decoded = _jws.decode_complete(
            compact, public_key, algorithms=[SIGNING_ALGORITHM]
        )
    except jwt.PyJWTError as exc:
        raise SignatureVerificationError(
            f"identity token signature is invalid: {exc}"
        ) from exc
    return VerifiedPayload(payload=decoded["payload"], key_id=block.key_id)


def decode_claims(verified: VerifiedPayload) -> Identity:
    """Decode verified JSON claims into an Identity."""
    try:
        return Identity.model_validate_json(verified.payload)
    except ValidationError as exc:
        raise ClaimDecodeError("identity claims are malformed") from exc


def to_jose_key(private_key: RSAPrivateKey) -> RSAKey:
    """Wrap an RSA private key for JWE decryption."""
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return RSAKey.import_key(pem)


class IdentityVerifier:
    """Turns an encrypted, signed identity token into a validated Identity."""

    def __init__(
        self, encryption_key: RSAPrivateKey, key_provider: PublicKeyProvider
    ) -> None:
        self._encryption_key = to_jose_key(encryption_key)
        self._key_provider = key_provider

    def verify(self, token: str, now: float | None = None) -> Identity:
        """Run every stage in order; the first failure aborts the rest."""
        encrypted = parse_encrypted(token)
        decrypted = decrypt(encrypted, self._encryption_key)
        envelope = parse_signed(decrypted)
        verified = verify_signature(envelope, self._key_provider)
        identity = decode_claims(verified)
        identity.validate_expiry(now)
        return identity


def decode_identity_token(
    token: str,
    encryption_key: RSAPrivateKey,
    key_provider: PublicKeyProvider,
    now: float | None = None,
) -> Identity:
    """Decrypt, verify and validate an identity token in one call."""
    return IdentityVerifier(encryption_key, key_provider).verify(token, now)
