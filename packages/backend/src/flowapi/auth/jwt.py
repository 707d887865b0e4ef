"""First-party JWT token creation and verification.

- Access token: short-lived (10 min), proves recent authentication
- Refresh token: long-lived (7 days), used to obtain new access tokens

Lifetimes are fixed policy, not configuration. The signing secret is
handed to TokenIssuer at construction so each environment (and each test)
can use its own key.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

ISSUER = "Flow App"
ACCESS_TOKEN_TTL = timedelta(minutes=10)
REFRESH_TOKEN_TTL = timedelta(days=7)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


class TokenError(Exception):
    """Raised when a first-party token fails verification."""


class TokenSigningError(Exception):
    """Raised when a token cannot be signed. Never hand out the token."""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "expires_at": self.expires_at,
            "refresh_token": self.refresh_token,
            "refresh_token_expires_at": self.refresh_token_expires_at,
        }


class TokenIssuer:
    """Mints and verifies signed tokens for local user ids."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("token signing secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm

    def issue_access_token(
        self, subject_id: str, now: Optional[datetime] = None
    ) -> tuple[str, datetime]:
        return self._issue(subject_id, TOKEN_TYPE_ACCESS, ACCESS_TOKEN_TTL, now)

    def issue_refresh_token(
        self, subject_id: str, now: Optional[datetime] = None
    ) -> tuple[str, datetime]:
        return self._issue(subject_id, TOKEN_TYPE_REFRESH, REFRESH_TOKEN_TTL, now)

    def issue_token_pair(self, subject_id: str) -> TokenPair:
        """Issue one access and one refresh token from the same instant."""
        now = datetime.now(timezone.utc)
        access_token, expires_at = self.issue_access_token(subject_id, now)
        refresh_token, refresh_expires_at = self.issue_refresh_token(subject_id, now)
        return TokenPair(
            access_token=access_token,
            expires_at=expires_at,
            refresh_token=refresh_token,
            refresh_token_expires_at=refresh_expires_at,
        )

    def _issue(
        self,
        subject_id: str,
        token_type: str,
        ttl: timedelta,
        now: Optional[datetime],
    ) -> tuple[str, datetime]:
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + ttl
        payload = {
            "sub": str(subject_id),
            "iss": ISSUER,
            "iat": issued_at,
            "exp": expires_at,
            "type": token_type,
            # Unique per token: same user + same second still yields a new signature
            "jti": uuid.uuid4().hex,
        }
        try:
            token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as e:
            raise TokenSigningError(f"Error signing {token_type} token: {e}") from e
        return token, expires_at

    def verify_token(self, token: str, expected_type: Optional[str] = None) -> dict:
        """Verify and decode a token issued by this service.

        Returns the payload dict on success.
        Raises TokenError on failure.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                issuer=ISSUER,
                options={"require": ["exp", "iat", "sub", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}")
        if expected_type and payload.get("type") != expected_type:
            raise TokenError(f"Not a {expected_type} token")
        return payload
