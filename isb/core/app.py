"""FastAPI application factory for the demo relying party."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from isb.core.settings import BrokerSettings
from isb.crypto.key_cache import KeyCache
from isb.crypto.keys import load_private_key_file, public_key_to_jwk
from isb.crypto.types import KEY_USE_ENCRYPTION, KEY_USE_SIGNATURE, JWKSet
from isb.oidc.flow import AuthFlow
from isb.oidc.routes_callback import router as callback_router
from isb.oidc.routes_identify import router as identify_router
from isb.oidc.routes_jwks import router as jwks_router

logger = logging.getLogger(__name__)


def build_relying_party_jwks(
    settings: BrokerSettings,
    signing_key: RSAPrivateKey,
    encryption_key: RSAPrivateKey,
) -> JWKSet:
    """Public halves of this client's keys, as published to the broker."""
    return JWKSet(
        keys=[
            public_key_to_jwk(
                signing_key.public_key(),
                settings.signing_key_id,
                use=KEY_USE_SIGNATURE,
                alg="RS256",
            ),
            public_key_to_jwk(
                encryption_key.public_key(),
                settings.encryption_key_id,
                use=KEY_USE_ENCRYPTION,
                alg="RSA-OAEP",
            ),
        ]
    )


def create_app(
    settings: BrokerSettings | None = None,
    *,
    signing_key: RSAPrivateKey | None = None,
    encryption_key: RSAPrivateKey | None = None,
    http_client: httpx.Client | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Keys not passed in are loaded from the PEM files named in settings.
    ``http_client`` is shared by the key cache and the token exchange.
    """
    settings = settings or BrokerSettings()
    if signing_key is None:
        signing_key = load_private_key_file(settings.signing_key_path)
    if encryption_key is None:
        encryption_key = load_private_key_file(settings.encryption_key_path)

    key_cache = KeyCache(
        settings.jwks_url,
        settings.key_cache_ttl,
        timeout=settings.key_fetch_timeout,
        client=http_client,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await run_in_threadpool(key_cache.refresh)
        logger.info(
            "loaded %d broker keys from %s", len(key_cache.keys), settings.jwks_url
        )
        yield

    app = FastAPI(
        title="Identity Service Broker relying party",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.key_cache = key_cache
    app.state.auth_flow = AuthFlow(
        settings,
        signing_key=signing_key,
        encryption_key=encryption_key,
        key_provider=key_cache,
        http_client=http_client,
    )
    app.state.relying_party_jwks = build_relying_party_jwks(
        settings, signing_key, encryption_key
    )

    app.include_router(identify_router)
    app.include_router(callback_router)
    app.include_router(jwks_router)

    return app
