"""RS256 compact JWS signing and client assertions."""

import time
from collections.abc import Callable

import jwt
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from pydantic import BaseModel

from isb.core.errors import SigningError

SIGNING_ALGORITHM = "RS256"

_jws = jwt.PyJWS()


class ClientAssertion(BaseModel):
    """Claims identifying this client to the token endpoint."""

    iss: str
    sub: str
    aud: str
    jti: str
    exp: int


def sign(
    payload: bytes,
    signing_key: RSAPrivateKey,
    key_id: str | None = None,
) -> str:
    """Sign ``payload`` with RS256 and return a compact JWS.

    The protected header is ``{"alg":"RS256"}`` plus ``kid`` when given;
    no ``typ`` is emitted.
    """
    headers: dict[str, str | None] = {"typ": None}
    if key_id is not None:
        headers["kid"] = key_id
    try:
        return _jws.encode(
            payload,
            signing_key,
            algorithm=SIGNING_ALGORITHM,
            headers=headers,
        )
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise SigningError(f"unable to sign payload: {exc}") from exc


class ClientAssertionSigner:
    """Mints short-lived JWT-bearer client assertions."""

    def __init__(
        self,
        client_id: str,
        audience: str,
        signing_key: RSAPrivateKey,
        lifetime: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client_id = client_id
        self._audience = audience
        self._signing_key = signing_key
        self._lifetime = lifetime
        self._clock = clock

    def build(self, token_id: str) -> ClientAssertion:
        """Build the claim set for a single assertion."""
        return ClientAssertion(
            iss=self._client_id,
            sub=self._client_id,
            aud=self._audience,
            jti=token_id,
            exp=int(self._clock()) + self._lifetime,
        )

    def encode(self, token_id: str) -> str:
        """Return a signed client assertion for ``token_id``."""
        claims = self.build(token_id)
        return sign(claims.model_dump_json().encode(), self._signing_key)
