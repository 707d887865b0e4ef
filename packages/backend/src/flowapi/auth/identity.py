"""External identity verification.

Clients authenticate with a token minted by an identity provider (IdP)
and say which IdP minted it. The provider set is closed: each member of
IdentityProvider maps to a verification strategy, and a provider without
a strategy is rejected as unsupported rather than guessed at.

Google ID tokens are RS256 JWTs. We check signature (Google's published
JWKS), expiry, issuer, and audience (our OAuth client id), then return
the email claim. The key set is fetched over HTTPS with a bounded
timeout and cached in-process. Tokens with an unknown key id trigger a
refetch, at most once per min_refresh_interval.
"""

import asyncio
import enum
import time
from typing import Any, Optional, Protocol

import httpx
import jwt
import structlog

logger = structlog.get_logger()

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class IdentityProvider(str, enum.Enum):
    GOOGLE = "google"
    FACEBOOK = "facebook"


class IdentityError(Exception):
    """Base class for identity verification failures."""


class InvalidTokenError(IdentityError):
    """Token is expired, badly signed, for another audience, or malformed."""


class UnsupportedProviderError(IdentityError):
    """The named IdP is unknown or has no verification strategy."""


class ProviderUnavailableError(IdentityError):
    """The IdP's key set could not be fetched."""


class ProviderVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the verified email for the token, or raise IdentityError."""
        ...


class GoogleTokenVerifier:
    """Verifies Google ID tokens against Google's JWKS."""

    def __init__(
        self,
        client_id: str,
        http_client: httpx.AsyncClient,
        certs_url: str,
        timeout: float = 5.0,
        cache_ttl: int = 3600,
        min_refresh_interval: float = 60.0,
    ):
        self.client_id = client_id
        self.certs_url = certs_url
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.min_refresh_interval = min_refresh_interval
        self._http = http_client
        self._keys: Optional[dict[str, dict[str, Any]]] = None
        self._fetched_at: float = 0.0
        self._last_forced: float = float("-inf")
        self._lock = asyncio.Lock()

    async def verify(self, token: str) -> str:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Malformed ID token: {e}") from e
        if not kid:
            raise InvalidTokenError("ID token header has no key id")

        key_data = await self._get_key(kid)
        try:
            signing_key = jwt.PyJWK(key_data).key
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"require": ["exp", "iat", "aud", "iss"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError("ID token has expired") from e
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Invalid ID token: {e}") from e

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise InvalidTokenError(f"Unexpected issuer: {claims.get('iss')}")
        email = claims.get("email")
        if not isinstance(email, str) or not email:
            raise InvalidTokenError("ID token carries no email claim")
        if claims.get("email_verified") is False:
            raise InvalidTokenError("Email in ID token is not verified")
        return email.strip().lower()

    async def _get_key(self, kid: str) -> dict[str, Any]:
        keys = self._keys if self._is_fresh() else await self._refresh()
        if kid not in keys:
            # Google rotates keys; a new kid may mean our cache is behind.
            keys = await self._refresh(forced=True)
        if kid not in keys:
            raise InvalidTokenError(f"Signing key not found: {kid}")
        return keys[kid]

    def _is_fresh(self) -> bool:
        return (
            self._keys is not None
            and time.monotonic() - self._fetched_at < self.cache_ttl
        )

    async def _refresh(self, forced: bool = False) -> dict[str, dict[str, Any]]:
        """Fetch the key set. Only one fetch runs at a time.

        Readers of a fresh cache never come here, so they never wait on
        the lock. A forced refresh is skipped when another task fetched
        while we waited, or when the last forced one was less than
        min_refresh_interval ago.
        """
        requested_at = time.monotonic()
        async with self._lock:
            now = time.monotonic()
            if self._keys is not None:
                if self._fetched_at > requested_at:
                    return self._keys
                if not forced and self._is_fresh():
                    return self._keys
                if forced and now - self._last_forced < self.min_refresh_interval:
                    logger.info("identity.jwks_refresh_throttled")
                    return self._keys
            if forced:
                self._last_forced = now

            try:
                response = await self._http.get(self.certs_url, timeout=self.timeout)
                response.raise_for_status()
                jwks = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error("identity.jwks_fetch_failed", url=self.certs_url, error=str(e))
                if self._keys is not None:
                    logger.warning("identity.jwks_using_stale_cache")
                    return self._keys
                raise ProviderUnavailableError("Unable to fetch Google signing keys") from e

            self._keys = {k["kid"]: k for k in jwks.get("keys", []) if "kid" in k}
            self._fetched_at = time.monotonic()
            logger.info("identity.jwks_refreshed", keys_count=len(self._keys), forced=forced)
            return self._keys


class IdentityVerifier:
    """Dispatches a token to the strategy of the IdP it claims to come from."""

    def __init__(self, providers: dict[IdentityProvider, ProviderVerifier]):
        self.providers = providers

    async def verify(self, token: str, idp: str) -> str:
        try:
            provider = IdentityProvider(idp)
        except ValueError:
            logger.warning("identity.unknown_provider", idp=idp)
            raise UnsupportedProviderError("invalid idp")

        strategy = self.providers.get(provider)
        if strategy is None:
            logger.warning("identity.provider_not_implemented", idp=provider.value)
            raise UnsupportedProviderError(f"{provider.value} not implemented yet")

        try:
            email = await strategy.verify(token)
        except IdentityError as e:
            logger.warning("identity.token_rejected", idp=provider.value, reason=str(e))
            raise
        logger.info("identity.token_verified", idp=provider.value)
        return email


def build_identity_verifier(settings, http_client: httpx.AsyncClient) -> IdentityVerifier:
    """Wire the supported providers from settings."""
    google = GoogleTokenVerifier(
        client_id=settings.google_client_id,
        http_client=http_client,
        certs_url=settings.google_certs_url,
        timeout=settings.idp_timeout_seconds,
        cache_ttl=settings.idp_keys_cache_seconds,
        min_refresh_interval=settings.idp_keys_min_refresh_seconds,
    )
    return IdentityVerifier({IdentityProvider.GOOGLE: google})
