"""Relying party endpoint that starts identification."""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from isb.api.deps import ATTEMPT_COOKIE, encode_attempt, get_auth_flow
from isb.core.errors import SigningError
from isb.oidc.flow import AuthFlow

router = APIRouter()

HTTP_TEMPORARY_REDIRECT = 307
ATTEMPT_COOKIE_MAX_AGE = 600


@router.get("/identify", response_model=None)
async def identify(
    flow: Annotated[AuthFlow, Depends(get_auth_flow)],
    consent: bool | None = None,
) -> RedirectResponse | JSONResponse:
    """GET /identify -- redirect the user agent to the broker."""
    try:
        attempt = await run_in_threadpool(flow.begin_auth, consent)
    except SigningError as exc:
        return JSONResponse(
            {"error": "server_error", "error_description": str(exc)},
            status_code=500,
        )
    response = RedirectResponse(
        url=attempt.redirect_url, status_code=HTTP_TEMPORARY_REDIRECT
    )
    response.set_cookie(
        ATTEMPT_COOKIE,
        encode_attempt(attempt),
        max_age=ATTEMPT_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return response
