"""Error taxonomy for the identity broker client.

Every failure in the authentication pipeline is reported as exactly one of
these kinds. Nothing here is retried by the client itself.
"""


class IdentityBrokerError(Exception):
    """Base class for all identity broker client failures."""


class TransportError(IdentityBrokerError):
    """Network failure while talking to the broker."""


class KeySourceError(IdentityBrokerError):
    """The key-set endpoint could not be reached or answered non-200."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class KeyFormatError(IdentityBrokerError):
    """Key material is not an acceptable RSA signature key."""


class KeyNotFoundError(IdentityBrokerError):
    """No key with the requested id exists in the current key set."""

    def __init__(self, key_id: str) -> None:
        super().__init__(f"public key with ID '{key_id}' not found")
        self.key_id = key_id


class TokenEndpointError(IdentityBrokerError):
    """The token endpoint rejected the exchange."""

    def __init__(
        self,
        status: int,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        message = f"token endpoint returned status code {status}"
        if error:
            message = f"{message}: {error}"
            if error_description:
                message = f"{message} ({error_description})"
        super().__init__(message)
        self.status = status
        self.error = error
        self.error_description = error_description


class ResponseFormatError(IdentityBrokerError):
    """The token endpoint body is not a valid access response."""


class MalformedTokenError(IdentityBrokerError):
    """A JWE or JWS envelope could not be parsed."""


class DecryptionError(IdentityBrokerError):
    """The identity token could not be decrypted."""


class UnexpectedSignatureCountError(IdentityBrokerError):
    """The signed envelope does not carry exactly one signature."""

    def __init__(self, count: int) -> None:
        super().__init__(f"expecting exactly one signature, got {count}")
        self.count = count


class SignatureVerificationError(IdentityBrokerError):
    """The identity token signature does not verify."""


class ClaimDecodeError(IdentityBrokerError):
    """The verified payload is not a valid identity claim set."""


class ExpiredIdentityError(IdentityBrokerError):
    """The identity has expired."""


class SigningError(IdentityBrokerError):
    """A payload could not be signed."""


class ProtocolError(IdentityBrokerError):
    """Invalid callback parameters or a broker-reported error."""

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class StateMismatchError(ProtocolError):
    """Callback state does not match the issued request."""


class NonceMismatchError(ProtocolError):
    """Identity nonce does not match the issued request."""
