"""JWT request signing for the custody provider.

Every request carries ``Authorization: Bearer <jwt>`` where the token binds the
request path, a strictly increasing nonce and the SHA-256 of the exact body
bytes. The provider rejects a request whose body differs from the hashed one.
"""

import hashlib
import threading
import time
from typing import Any, Dict

import jwt
from cryptography.hazmat.primitives import serialization

TOKEN_TTL_SECONDS = 30


def body_hash(body: bytes) -> str:
    return hashlib.sha256(body).hexdigest()


class RequestSigner:
    """Signs custody API requests with RS256."""

    def __init__(self, private_key_pem: bytes, api_key: str):
        self._private_key = serialization.load_pem_private_key(private_key_pem, password=None)
        self.api_key = api_key
        self._nonce_lock = threading.Lock()
        self._last_nonce = 0

    @classmethod
    def from_file(cls, path: str, api_key: str) -> "RequestSigner":
        with open(path, "rb") as f:
            return cls(f.read(), api_key)

    def next_nonce(self) -> int:
        """Nanosecond wall clock, bumped so concurrent callers never repeat."""
        with self._nonce_lock:
            nonce = max(time.time_ns(), self._last_nonce + 1)
            self._last_nonce = nonce
        if nonce <= 0:
            raise RuntimeError("time is running backwards")
        return nonce

    def claims(self, uri: str, body: bytes) -> Dict[str, Any]:
        iat = int(time.time())
        return {
            "uri": uri,
            "nonce": self.next_nonce(),
            "iat": iat,
            "exp": iat + TOKEN_TTL_SECONDS,
            "sub": self.api_key,
            "bodyHash": body_hash(body),
        }

    def sign(self, uri: str, body: bytes) -> str:
        return jwt.encode(self.claims(uri, body), self._private_key, algorithm="RS256")
