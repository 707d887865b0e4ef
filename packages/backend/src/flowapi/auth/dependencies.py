"""FastAPI auth dependencies.

These are used as Depends() in route handlers (and overridden in tests):
- get_token_issuer: the TokenIssuer built from the configured secret
- get_identity_verifier: the IdP verifier sharing one HTTP client

extract_bearer_token is a plain function because it must run before the
body is decoded, and route handlers call it explicitly to keep that order.
"""

from functools import lru_cache
from typing import Optional

import httpx

from flowapi.auth.identity import IdentityVerifier, build_identity_verifier
from flowapi.auth.jwt import TokenIssuer
from flowapi.config import settings
from flowapi.errors import Unauthenticated

_http_client: Optional[httpx.AsyncClient] = None
_identity_verifier: Optional[IdentityVerifier] = None


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an Authorization header or raise Unauthenticated."""
    value = (authorization or "").strip()
    scheme, _, credential = value.partition(" ")
    if scheme.lower() == "bearer":
        value = credential.strip()
    if not value:
        raise Unauthenticated("No token provided in Authorization header")
    return value


@lru_cache
def get_token_issuer() -> TokenIssuer:
    return TokenIssuer(secret=settings.jwt_secret, algorithm=settings.jwt_algorithm)


def get_http_client() -> httpx.AsyncClient:
    """Shared client for outbound IdP calls (connection pooling)."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=settings.idp_timeout_seconds)
    return _http_client


def get_identity_verifier() -> IdentityVerifier:
    global _identity_verifier
    if _identity_verifier is None:
        _identity_verifier = build_identity_verifier(settings, get_http_client())
    return _identity_verifier


async def close_http_client() -> None:
    global _http_client, _identity_verifier
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None
    _identity_verifier = None
