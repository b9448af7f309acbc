"""Time-bounded, thread-safe cache of the broker's signing keys."""

import threading
import time
from collections.abc import Callable

import httpx
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from pydantic import ValidationError

from isb.core.errors import KeyFormatError, KeyNotFoundError, KeySourceError
from isb.crypto.keys import jwk_to_public_key
from isb.crypto.types import JWKEntry, JWKSet

KEY_FETCH_TIMEOUT = 15.0
HTTP_OK = 200


class KeyCache:
    """Holds the broker key set and refreshes it at most once per ``ttl``.

    The whole check-fetch-replace sequence of :meth:`refresh` runs under one
    lock, so concurrent callers never fetch twice within the interval and
    never observe a half-replaced key set. Failed fetches leave the previous
    key set and refresh timestamp untouched.
    """

    def __init__(
        self,
        url: str,
        ttl: float,
        *,
        timeout: float = KEY_FETCH_TIMEOUT,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url
        self._ttl = ttl
        self._timeout = timeout
        self._client = client
        self._clock = clock
        self._keys: tuple[JWKEntry, ...] = ()
        self._last_update: float | None = None
        self._lock = threading.Lock()

    @property
    def keys(self) -> tuple[JWKEntry, ...]:
        """Snapshot of the current key set."""
        with self._lock:
            return self._keys

    def refresh(self) -> None:
        """Fetch the key set unless the last refresh is still fresh."""
        with self._lock:
            now = self._clock()
            if self._last_update is not None and now - self._last_update < self._ttl:
                return
            key_set = self._fetch()
            self._keys = tuple(key_set.keys)
            self._last_update = self._clock()

    def lookup(self, key_id: str) -> RSAPublicKey:
        """Return the verification key with id ``key_id``."""
        self.refresh()
        for entry in self.keys:
            if entry.kid == key_id:
                return jwk_to_public_key(entry)
        raise KeyNotFoundError(key_id)

    def _fetch(self) -> JWKSet:
        try:
            if self._client is not None:
                response = self._client.get(self._url, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.get(self._url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise KeySourceError(f"GET {self._url} failed: {exc}") from exc
        if response.status_code != HTTP_OK:
            raise KeySourceError(
                f"GET {self._url} returned status code {response.status_code}",
                status=response.status_code,
            )
        try:
            return JWKSet.model_validate_json(response.content)
        except ValidationError as exc:
            raise KeyFormatError(f"invalid key set from {self._url}") from exc
