"""Tests for the application factory."""

from pathlib import Path

from conftest import JWKS_URL, BrokerStub
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from fastapi import FastAPI
from httpx import AsyncClient

from isb.core.app import create_app
from isb.core.settings import BrokerSettings

HTTP_OK = 200
HTTP_REDIRECT = 307
HTTP_BAD_REQUEST = 400


def _write_pkcs1(path: Path, key: RSAPrivateKey) -> None:
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )


class TestCreateApp:
    """Tests for create_app."""

    def test_loads_keys_from_settings_paths(
        self,
        tmp_path: Path,
        settings: BrokerSettings,
        sp_signing_key: RSAPrivateKey,
        sp_encryption_key: RSAPrivateKey,
    ) -> None:
        _write_pkcs1(tmp_path / "signing.pem", sp_signing_key)
        _write_pkcs1(tmp_path / "encryption.pem", sp_encryption_key)
        settings = settings.model_copy(
            update={
                "signing_key_path": str(tmp_path / "signing.pem"),
                "encryption_key_path": str(tmp_path / "encryption.pem"),
            }
        )
        app = create_app(settings)
        jwks = app.state.relying_party_jwks
        assert [k.kid for k in jwks.keys] == ["sp-signing", "sp-encryption"]

    async def test_lifespan_warms_key_cache(
        self, app: FastAPI, broker: BrokerStub
    ) -> None:
        async with app.router.lifespan_context(app):
            assert len(app.state.key_cache.keys) == 1
        assert len(broker.calls_to(JWKS_URL)) == 1

    async def test_routes_registered(self, client: AsyncClient) -> None:
        assert (await client.get("/identify")).status_code == HTTP_REDIRECT
        assert (await client.get("/callback")).status_code == HTTP_BAD_REQUEST
        assert (await client.post("/callback")).status_code == HTTP_BAD_REQUEST
        assert (await client.get("/jwks")).status_code == HTTP_OK

