"""Authorization code exchange at the broker token endpoint."""

import httpx
from pydantic import ValidationError

from isb.core.errors import ResponseFormatError, TokenEndpointError, TransportError
from isb.crypto.keys import create_random_token
from isb.crypto.signer import ClientAssertionSigner
from isb.oidc.types import AccessResponse

GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
TOKEN_TIMEOUT = 15.0
ASSERTION_ID_SIZE = 32
HTTP_OK = 200


class TokenExchanger:
    """Exchanges an authorization code for tokens, single attempt."""

    def __init__(
        self,
        token_url: str,
        signer: ClientAssertionSigner,
        *,
        timeout: float = TOKEN_TIMEOUT,
        assertion_id_size: int = ASSERTION_ID_SIZE,
        client: httpx.Client | None = None,
    ) -> None:
        self._token_url = token_url
        self._signer = signer
        self._timeout = timeout
        self._assertion_id_size = assertion_id_size
        self._client = client

    def build_form(self, authorization_code: str) -> dict[str, str]:
        """Build the form body with a freshly minted client assertion."""
        assertion = self._signer.encode(create_random_token(self._assertion_id_size))
        return {
            "code": authorization_code,
            "grant_type": GRANT_TYPE_AUTHORIZATION_CODE,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": assertion,
        }

    def exchange(self, authorization_code: str) -> AccessResponse:
        """POST the code to the token endpoint and decode the response."""
        form = self.build_form(authorization_code)
        response = self._post(form)
        if response.status_code != HTTP_OK:
            raise TokenEndpointError(response.status_code)
        try:
            access = AccessResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise ResponseFormatError("invalid token endpoint response") from exc
        if access.error:
            raise TokenEndpointError(
                response.status_code, access.error, access.error_description
            )
        return access

    def _post(self, form: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        try:
            if self._client is not None:
                return self._client.post(
                    self._token_url, data=form, headers=headers, timeout=self._timeout
                )
            with httpx.Client(timeout=self._timeout) as client:
                return client.post(self._token_url, data=form, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"POST {self._token_url} failed: {exc}") from exc
