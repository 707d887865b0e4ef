"""Auth API — login with an external identity provider token.

- POST /auth/login → IdP token (Authorization: Bearer) + {idp} → app tokens

Only registered users can log in; everyone else is sent to /users/signup.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from flowapi.api.decoding import read_json_body
from flowapi.auth.dependencies import (
    extract_bearer_token,
    get_identity_verifier,
    get_token_issuer,
)
from flowapi.auth.identity import IdentityVerifier
from flowapi.auth.jwt import TokenIssuer
from flowapi.db.engine import get_user_store
from flowapi.db.store import UserStore
from flowapi.schemas.user import LoginRequest, UserAccessResponse
from flowapi.services.onboarding_service import OnboardingService

router = APIRouter(prefix="/auth")


def _svc(
    store: UserStore = Depends(get_user_store),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> OnboardingService:
    return OnboardingService(store, verifier, issuer)


@router.post("/login", response_model=UserAccessResponse)
async def login(
    request: Request,
    authorization: Optional[str] = Header(None),
    svc: OnboardingService = Depends(_svc),
):
    """Verify the IdP token and return the user's profile with fresh tokens."""
    token = extract_bearer_token(authorization)
    body = await read_json_body(request, LoginRequest)
    user, tokens = await svc.login(token, body)
    return UserAccessResponse.build(user, tokens)
