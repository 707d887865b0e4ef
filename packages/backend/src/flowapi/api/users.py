"""Users API — signup, direct registration, lookup, deletion.

- POST /users/signup → step "1": is this IdP identity free? step "2": register it
- POST /users → register without an IdP, returns tokens
- GET /users/{email} → stored profile
- DELETE /users/{user_id} → remove a user
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response

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
from flowapi.errors import MalformedRequest
from flowapi.schemas.user import (
    SignupRequest,
    UserAccessResponse,
    UserCreateRequest,
    UserRead,
    is_valid_email,
)
from flowapi.services.onboarding_service import OnboardingService

router = APIRouter(prefix="/users")


def _svc(
    store: UserStore = Depends(get_user_store),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> OnboardingService:
    return OnboardingService(store, verifier, issuer)


@router.post("/signup", response_model=UserAccessResponse)
async def signup(
    request: Request,
    authorization: Optional[str] = Header(None),
    svc: OnboardingService = Depends(_svc),
):
    """Two-step signup. The IdP token is presented again on each step.

    Step "1" answers 200 with an empty body when the email is free.
    Step "2" creates the user and answers with profile and tokens.
    """
    token = extract_bearer_token(authorization)
    body = await read_json_body(request, SignupRequest)
    result = await svc.signup(token, body)
    if result is None:
        return Response(status_code=200)
    user, tokens = result
    return UserAccessResponse.build(user, tokens)


@router.post("", response_model=UserAccessResponse, status_code=201)
async def create_user(request: Request, svc: OnboardingService = Depends(_svc)):
    body = await read_json_body(request, UserCreateRequest)
    user, tokens = await svc.create_user(body)
    return UserAccessResponse.build(user, tokens)


@router.get("/{email}", response_model=UserRead)
async def get_user(email: str, svc: OnboardingService = Depends(_svc)):
    if not is_valid_email(email):
        raise MalformedRequest("invalid email")
    return await svc.get_user(email)


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, svc: OnboardingService = Depends(_svc)):
    await svc.delete_user(user_id)
    return Response(status_code=204)
