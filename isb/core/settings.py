"""Relying party settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

ASSERTION_LIFETIME_DEFAULT = 600
KEY_CACHE_TTL_DEFAULT = 300
HTTP_TIMEOUT_DEFAULT = 15.0
RANDOM_TOKEN_SIZE_DEFAULT = 32


class BrokerSettings(BaseSettings):
    """Client registration and broker endpoints."""

    model_config = SettingsConfigDict(env_prefix="ISB_")

    client_id: str = "saippuakauppias"
    scope: str = "openid personal_identity_code profile"
    authorize_url: str = "https://isb-test.op.fi/oauth/authorize"
    token_url: str = "https://isb-test.op.fi/oauth/token"
    jwks_url: str = "https://isb-test.op.fi/jwks/broker"
    callback_url: str = "http://localhost:8000/callback"
    locales: str = "fi"
    prompt_consent: bool = False
    assertion_lifetime: int = ASSERTION_LIFETIME_DEFAULT
    key_cache_ttl: float = KEY_CACHE_TTL_DEFAULT
    token_timeout: float = HTTP_TIMEOUT_DEFAULT
    key_fetch_timeout: float = HTTP_TIMEOUT_DEFAULT
    random_token_size: int = RANDOM_TOKEN_SIZE_DEFAULT
    signing_key_path: str = "sandbox-sp-signing-key.pem"
    encryption_key_path: str = "sandbox-sp-encryption-key.pem"
    signing_key_id: str = "sp-signing"
    encryption_key_id: str = "sp-encryption"
