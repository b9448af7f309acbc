"""Relying party endpoint receiving the broker callback."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from isb.api.deps import ATTEMPT_COOKIE, decode_attempt, get_auth_flow
from isb.core.errors import IdentityBrokerError
from isb.oidc.flow import AuthFlow

router = APIRouter()
logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400


async def _callback_params(request: Request) -> dict[str, str]:
    """Merge query and form parameters, form values taking precedence."""
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params


@router.api_route("/callback", methods=["GET", "POST"])
async def callback(
    request: Request,
    flow: Annotated[AuthFlow, Depends(get_auth_flow)],
) -> JSONResponse:
    """GET|POST /callback -- resolve the authorization code to an identity."""
    params = await _callback_params(request)
    try:
        attempt = decode_attempt(request.cookies.get(ATTEMPT_COOKIE))
        identity = await run_in_threadpool(flow.resume, attempt, params)
    except IdentityBrokerError as exc:
        logger.warning("identification failed: %s: %s", type(exc).__name__, exc)
        response = JSONResponse(
            {"error": type(exc).__name__, "error_description": str(exc)},
            status_code=HTTP_BAD_REQUEST,
        )
        response.delete_cookie(ATTEMPT_COOKIE)
        return response
    response = JSONResponse(identity.model_dump())
    response.delete_cookie(ATTEMPT_COOKIE)
    return response
