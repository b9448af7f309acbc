"""Shared test fixtures for the identity broker client."""

import json
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from joserfc import jwe
from joserfc.jwk import RSAKey

from isb.core.app import create_app
from isb.core.errors import KeyNotFoundError
from isb.core.settings import BrokerSettings
from isb.crypto.keys import public_key_to_jwk
from isb.crypto.types import JWKSet

BROKER_KID = "broker-sig-1"
CLIENT_ID = "test-client"
AUTHORIZE_URL = "https://broker.test/oauth/authorize"
TOKEN_URL = "https://broker.test/oauth/token"
JWKS_URL = "https://broker.test/jwks/broker"
CALLBACK_URL = "http://localhost:8000/callback"


def generate_rsa_key() -> RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def broker_key() -> RSAPrivateKey:
    """Key the broker signs identity tokens with."""
    return generate_rsa_key()


@pytest.fixture(scope="session")
def other_key() -> RSAPrivateKey:
    """Unrelated key for negative tests."""
    return generate_rsa_key()


@pytest.fixture(scope="session")
def sp_signing_key() -> RSAPrivateKey:
    """Relying party signing key."""
    return generate_rsa_key()


@pytest.fixture(scope="session")
def sp_encryption_key() -> RSAPrivateKey:
    """Relying party encryption key."""
    return generate_rsa_key()


@pytest.fixture
def settings() -> BrokerSettings:
    return BrokerSettings(
        client_id=CLIENT_ID,
        authorize_url=AUTHORIZE_URL,
        token_url=TOKEN_URL,
        jwks_url=JWKS_URL,
        callback_url=CALLBACK_URL,
        scope="openid personal_identity_code profile",
        locales="fi",
    )


@pytest.fixture
def broker_jwks(broker_key: RSAPrivateKey) -> JWKSet:
    """Broker key set containing the broker signing key."""
    return JWKSet(keys=[public_key_to_jwk(broker_key.public_key(), BROKER_KID)])


class StaticKeyProvider:
    """Fixed key set that records every lookup."""

    def __init__(self, keys: dict[str, RSAPublicKey]) -> None:
        self._keys = keys
        self.lookups: list[str] = []

    def lookup(self, key_id: str) -> RSAPublicKey:
        self.lookups.append(key_id)
        if key_id not in self._keys:
            raise KeyNotFoundError(key_id)
        return self._keys[key_id]


@pytest.fixture
def key_provider(broker_key: RSAPrivateKey) -> StaticKeyProvider:
    return StaticKeyProvider({BROKER_KID: broker_key.public_key()})


def identity_claims(**overrides: Any) -> dict[str, Any]:
    claims: dict[str, Any] = {
        "aud": CLIENT_ID,
        "exp": int(time.time()) + 600,
        "nonce": "expected-nonce",
        "birthdate": "1970-01-01",
        "given_name": "Väinö",
        "family_name": "Tunnistus",
        "name": "Tunnistus Väinö",
        "personal_identity_code": "010170-960F",
    }
    claims.update(overrides)
    return claims


class JoseFactory:
    """Builds broker-style signed and encrypted tokens."""

    def __init__(self, broker_key: RSAPrivateKey, encryption_key: RSAPrivateKey):
        self.broker_key = broker_key
        self.encryption_key = encryption_key

    def sign_compact(
        self,
        payload: bytes,
        key: RSAPrivateKey | None = None,
        kid: str | None = BROKER_KID,
    ) -> str:
        headers = {"kid": kid} if kid is not None else None
        return jwt.PyJWS().encode(
            payload, key or self.broker_key, algorithm="RS256", headers=headers
        )

    def general_json(self, payload: bytes, keys: list[tuple[RSAPrivateKey, str]]):
        """JWS general JSON serialization with one signature per key."""
        signatures = []
        encoded_payload = ""
        for key, kid in keys:
            protected, encoded_payload, signature = self.sign_compact(
                payload, key, kid
            ).split(".")
            signatures.append({"protected": protected, "signature": signature})
        if not keys:
            encoded_payload = self.sign_compact(payload).split(".")[1]
        return json.dumps({"payload": encoded_payload, "signatures": signatures})

    def encrypt(
        self,
        plaintext: str | bytes,
        public_key: RSAPublicKey | None = None,
        enc: str = "A128CBC-HS256",
    ) -> str:
        public_key = public_key or self.encryption_key.public_key()
        pem = public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return jwe.encrypt_compact(
            {"alg": "RSA-OAEP", "enc": enc},
            plaintext,
            RSAKey.import_key(pem),
            algorithms=["RSA-OAEP", enc],
        )

    def id_token(self, claims: dict[str, Any] | None = None, **overrides: Any) -> str:
        """Sign then encrypt an identity claim set."""
        payload = json.dumps(claims or identity_claims(**overrides)).encode()
        return self.encrypt(self.sign_compact(payload))


@pytest.fixture
def jose_factory(
    broker_key: RSAPrivateKey, sp_encryption_key: RSAPrivateKey
) -> JoseFactory:
    return JoseFactory(broker_key, sp_encryption_key)


class BrokerStub:
    """Mock broker serving the key set and the token endpoint.

    Every request is recorded in ``calls``.
    """

    def __init__(self, jwks: JWKSet) -> None:
        self.jwks = jwks
        self.id_token = ""
        self.token_status = 200
        self.calls: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if str(request.url) == JWKS_URL:
            return httpx.Response(200, content=self.jwks.model_dump_json())
        if str(request.url) == TOKEN_URL:
            return httpx.Response(
                self.token_status,
                json={
                    "access_token": "at-1",
                    "token_type": "Bearer",
                    "expires_in": 600,
                    "id_token": self.id_token,
                },
            )
        return httpx.Response(404)

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [c for c in self.calls if str(c.url) == url]


@pytest.fixture
def broker(broker_jwks: JWKSet) -> BrokerStub:
    return BrokerStub(broker_jwks)


@pytest.fixture
def app(
    settings: BrokerSettings,
    sp_signing_key: RSAPrivateKey,
    sp_encryption_key: RSAPrivateKey,
    broker: BrokerStub,
) -> FastAPI:
    """Relying party app wired to the mock broker."""
    return create_app(
        settings,
        signing_key=sp_signing_key,
        encryption_key=sp_encryption_key,
        http_client=httpx.Client(transport=httpx.MockTransport(broker.handler)),
    )


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Create an httpx test client for the relying party app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
