"""Authentication flow orchestration against the identity broker."""

import secrets
from collections.abc import Mapping

import httpx
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from isb.core.errors import (
    IdentityBrokerError,
    NonceMismatchError,
    ProtocolError,
    StateMismatchError,
)
from isb.core.settings import BrokerSettings
from isb.crypto.keys import create_random_token
from isb.crypto.signer import ClientAssertionSigner, sign
from isb.crypto.types import PublicKeyProvider
from isb.oidc.identity import IdentityVerifier
from isb.oidc.token_exchange import TokenExchanger
from isb.oidc.types import (
    PROMPT_CONSENT,
    AttemptStage,
    AuthAttempt,
    AuthorizationRequest,
    CallbackParams,
    Identity,
)


def parse_callback(params: Mapping[str, str]) -> CallbackParams:
    """Validate callback parameters before any cryptographic work."""
    error = params.get("error", "")
    if error:
        description = params.get("error_description", "")
        message = f"identification failed: {error}"
        if description:
            message = f"identification failed: {description} ({error})"
        raise ProtocolError(message, error=error, error_description=description)
    state = params.get("state", "")
    if not state:
        raise ProtocolError("state parameter is missing or empty")
    code = params.get("code", "")
    if not code:
        raise ProtocolError("code parameter is missing or empty")
    return CallbackParams(state=state, code=code)


class AuthFlow:
    """Builds authorization requests and resolves codes into identities.

    Nonce verification is not done by the identity verifier: it has no
    access to the request that started the attempt. Callers either pass
    ``expected_nonce`` to :meth:`complete_auth` or use :meth:`resume`,
    which checks both state and nonce against the stored attempt.
    """

    def __init__(
        self,
        settings: BrokerSettings,
        signing_key: RSAPrivateKey,
        encryption_key: RSAPrivateKey,
        key_provider: PublicKeyProvider,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._signing_key = signing_key
        signer = ClientAssertionSigner(
            client_id=settings.client_id,
            audience=settings.token_url,
            signing_key=signing_key,
            lifetime=settings.assertion_lifetime,
        )
        self._exchanger = TokenExchanger(
            settings.token_url,
            signer,
            timeout=settings.token_timeout,
            assertion_id_size=settings.random_token_size,
            client=http_client,
        )
        self._verifier = IdentityVerifier(encryption_key, key_provider)

    def build_request(
        self, nonce: str, state: str, prompt_consent: bool = False
    ) -> AuthorizationRequest:
        """Build the authorization request object."""
        return AuthorizationRequest(
            client_id=self._settings.client_id,
            scope=self._settings.scope,
            redirect_uri=self._settings.callback_url,
            nonce=nonce,
            state=state,
            ui_locales=self._settings.locales,
            prompt=PROMPT_CONSENT if prompt_consent else None,
        )

    def begin_auth(self, prompt_consent: bool | None = None) -> AuthAttempt:
        """Start an attempt: fresh nonce and state, signed redirect URL."""
        if prompt_consent is None:
            prompt_consent = self._settings.prompt_consent
        size = self._settings.random_token_size
        request = self.build_request(
            nonce=create_random_token(size),
            state=create_random_token(size),
            prompt_consent=prompt_consent,
        )
        token = sign(
            request.model_dump_json(exclude_none=True).encode(), self._signing_key
        )
        return AuthAttempt(
            nonce=request.nonce,
            state=request.state,
            redirect_url=f"{self._settings.authorize_url}?request={token}",
        )

    def complete_auth(
        self, code: str, *, expected_nonce: str | None = None
    ) -> Identity:
        """Exchange ``code`` and verify the returned identity token."""
        access = self._exchanger.exchange(code)
        identity = self._verifier.verify(access.id_token)
        if expected_nonce is not None:
            _check_nonce(identity, expected_nonce)
        return identity

    def resume(self, attempt: AuthAttempt, params: Mapping[str, str]) -> Identity:
        """Drive ``attempt`` from the broker callback to a verified identity.

        The attempt's stage is updated in place; any failure leaves it in
        ``FAILED`` and is re-raised unchanged.
        """
        if attempt.stage is not AttemptStage.REQUEST_ISSUED:
            raise ProtocolError(f"attempt is already {attempt.stage.value}")
        try:
            callback = parse_callback(params)
            if not _same(callback.state, attempt.state):
                raise StateMismatchError("state does not match the request")
            access = self._exchanger.exchange(callback.code)
            attempt.stage = AttemptStage.CODE_EXCHANGED
            identity = self._verifier.verify(access.id_token)
            _check_nonce(identity, attempt.nonce)
        except IdentityBrokerError as exc:
            attempt.stage = AttemptStage.FAILED
            attempt.failure = type(exc).__name__
            raise
        attempt.stage = AttemptStage.IDENTITY_VERIFIED
        return identity


def _same(received: str, expected: str) -> bool:
    return secrets.compare_digest(received.encode(), expected.encode())


def _check_nonce(identity: Identity, expected_nonce: str) -> None:
    if not _same(identity.nonce, expected_nonce):
        raise NonceMismatchError("identity nonce does not match the request")
