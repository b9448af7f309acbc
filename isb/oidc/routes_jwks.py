"""Relying party public key set."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from isb.api.deps import get_relying_party_jwks
from isb.crypto.types import JWKSet

router = APIRouter()

JWKS_CACHE_CONTROL = "public, max-age=3600"


@router.get("/jwks", response_model_exclude_none=True)
async def jwks(
    response: Response,
    key_set: Annotated[JWKSet, Depends(get_relying_party_jwks)],
) -> JWKSet:
    """JSON Web Key Set with this client's signing and encryption keys."""
    response.headers["Cache-Control"] = JWKS_CACHE_CONTROL
    return key_set
