"""Type definitions for the broker authentication flow."""

import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from isb.core.errors import ExpiredIdentityError

RESPONSE_TYPE_CODE = "code"
PROMPT_CONSENT = "consent"


class AuthorizationRequest(BaseModel):
    """Request object signed and sent to the authorize endpoint."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    scope: str
    redirect_uri: str
    response_type: str = RESPONSE_TYPE_CODE
    nonce: str
    state: str
    ui_locales: str
    prompt: str | None = None


class AccessResponse(BaseModel):
    """Token endpoint response."""

    access_token: str = ""
    token_type: str = ""
    expires_in: int = 0
    id_token: str = ""
    error: str | None = None
    error_description: str | None = None


class Identity(BaseModel):
    """Claims decoded from a verified identity token."""

    aud: str = ""
    exp: int = 0
    nonce: str = ""
    birthdate: str = ""
    given_name: str = ""
    family_name: str = ""
    name: str = ""
    personal_identity_code: str = ""

    @field_validator(
        "aud",
        "nonce",
        "birthdate",
        "given_name",
        "family_name",
        "name",
        "personal_identity_code",
        mode="before",
    )
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def validate_expiry(self, now: float | None = None) -> None:
        """Raise if the identity is expired at ``now``."""
        if now is None:
            now = time.time()
        if self.exp <= now:
            raise ExpiredIdentityError("identity has expired")


class CallbackParams(BaseModel):
    """Validated callback parameters."""

    state: str
    code: str


class AttemptStage(StrEnum):
    """Caller-visible stage of one authentication attempt."""

    REQUEST_ISSUED = "request_issued"
    CODE_EXCHANGED = "code_exchanged"
    IDENTITY_VERIFIED = "identity_verified"
    FAILED = "failed"


class AuthAttempt(BaseModel):
    """One authentication attempt, remembered by the caller between steps."""

    nonce: str
    state: str
    redirect_url: str
    stage: AttemptStage = AttemptStage.REQUEST_ISSUED
    failure: str | None = None
