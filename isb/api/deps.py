"""FastAPI dependencies and attempt cookie handling."""

import base64
import binascii

from fastapi import Request
from pydantic import ValidationError

from isb.core.errors import ProtocolError
from isb.crypto.types import JWKSet
from isb.oidc.flow import AuthFlow
from isb.oidc.types import AuthAttempt

ATTEMPT_COOKIE = "isb_attempt"


def get_auth_flow(request: Request) -> AuthFlow:
    return request.app.state.auth_flow


def get_relying_party_jwks(request: Request) -> JWKSet:
    return request.app.state.relying_party_jwks


def encode_attempt(attempt: AuthAttempt) -> str:
    """Serialize an attempt into a cookie-safe string."""
    raw = attempt.model_dump_json().encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_attempt(value: str | None) -> AuthAttempt:
    """Restore an attempt from its cookie value."""
    if not value:
        raise ProtocolError("no authentication attempt in progress")
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
        return AuthAttempt.model_validate_json(raw)
    except (binascii.Error, ValueError, ValidationError) as exc:
        raise ProtocolError("authentication attempt cookie is invalid") from exc
