"""Onboarding service — login and two-step signup.

Every flow runs the same fixed sequence and stops at the first failure:

    validate body → verify IdP token → consult/modify the store → issue tokens

Body validation always comes first so a malformed request never costs a
round-trip to the identity provider, and identity is always verified
before the store is touched. Nothing is retried: a failed insert is
reported, never repeated. Component exceptions are translated here into
the application error taxonomy (flowapi.errors).
"""

from typing import Optional

import structlog

from flowapi.auth.identity import IdentityError, IdentityVerifier
from flowapi.auth.jwt import TokenIssuer, TokenPair, TokenSigningError
from flowapi.db.models import ROLE_CUSTOMER, User
from flowapi.db.store import StoreError, UserConflictError, UserNotFoundError, UserStore
from flowapi.errors import Conflict, InternalFailure, NotFound, Unauthenticated
from flowapi.schemas.user import (
    SIGNUP_STEP_CHECK,
    LoginRequest,
    SignupRequest,
    UserCreateRequest,
    UserInfoSignup,
)

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class OnboardingService:
    """Business logic for getting a person from an IdP token to our tokens."""

    def __init__(self, store: UserStore, verifier: IdentityVerifier, issuer: TokenIssuer):
        self.store = store
        self.verifier = verifier
        self.issuer = issuer

    # ─── Flows ──────────────────────────────────────────

    async def login(self, token: str, body: LoginRequest) -> tuple[User, TokenPair]:
        """Existing users trade a valid IdP token for a fresh token pair."""
        body.validate_fields()
        email = await self._verify_identity(token, body.idp)

        user = await self._get_user(email)
        if user is None:
            logger.info("onboarding.login_unregistered")
            raise NotFound("User not registered, please signup")

        tokens = self._issue_tokens(user)
        logger.info("onboarding.login_succeeded", user_id=user.id)
        return user, tokens

    async def signup(
        self, token: str, body: SignupRequest
    ) -> Optional[tuple[User, TokenPair]]:
        """Step "1" checks availability and returns None; step "2" registers."""
        body.validate_fields()
        email = await self._verify_identity(token, body.idp)

        if body.step == SIGNUP_STEP_CHECK:
            await self.check_availability(email)
            return None
        return await self.register(email, body.user_info)

    async def check_availability(self, email: str) -> None:
        if await self._get_user(email) is not None:
            logger.info("onboarding.signup_already_registered")
            raise Conflict("User already registered")
        logger.info("onboarding.signup_available")

    async def register(self, email: str, profile: UserInfoSignup) -> tuple[User, TokenPair]:
        user = User(
            email=email,
            role=ROLE_CUSTOMER,
            dni=profile.dni,
            name=profile.name,
            lastname_main=profile.lastname_main,
            lastname_secondary=profile.lastname_secondary,
            address=profile.address,
        )
        user = await self._create_user(user)
        tokens = self._issue_tokens(user)
        logger.info("onboarding.signup_completed", user_id=user.id)
        return user, tokens

    async def create_user(self, body: UserCreateRequest) -> tuple[User, TokenPair]:
        """Direct registration, without an identity provider."""
        body.validate_fields()
        user = User(
            email=normalize_email(body.email),
            role=ROLE_CUSTOMER,
            dni=body.dni,
            name=body.name,
            lastname_main=body.lastname_main,
            lastname_secondary=body.lastname_secondary,
            address=body.address,
        )
        user = await self._create_user(user)
        tokens = self._issue_tokens(user)
        logger.info("onboarding.user_created", user_id=user.id)
        return user, tokens

    async def get_user(self, email: str) -> User:
        user = await self._get_user(normalize_email(email))
        if user is None:
            raise NotFound("User not found")
        return user

    async def delete_user(self, user_id: int) -> None:
        try:
            await self.store.delete_user(user_id)
        except UserNotFoundError:
            raise NotFound("User not found")
        except StoreError as e:
            raise InternalFailure("Error deleting user", detail=e)
        logger.info("onboarding.user_deleted", user_id=user_id)

    # ─── Steps ──────────────────────────────────────────

    async def _verify_identity(self, token: str, idp: str) -> str:
        try:
            return await self.verifier.verify(token, idp)
        except IdentityError as e:
            raise Unauthenticated(str(e))

    async def _get_user(self, email: str) -> Optional[User]:
        try:
            return await self.store.get_user(email)
        except StoreError as e:
            raise InternalFailure("Error getting user", detail=e)

    async def _create_user(self, user: User) -> User:
        try:
            return await self.store.create_user(user)
        except UserConflictError as e:
            logger.info("onboarding.user_conflict", field=e.field)
            raise Conflict(str(e))
        except StoreError as e:
            raise InternalFailure("Error creating user", detail=e)

    def _issue_tokens(self, user: User) -> TokenPair:
        try:
            return self.issuer.issue_token_pair(str(user.id))
        except TokenSigningError as e:
            raise InternalFailure("Error while generating access to App Flow", detail=e)
