"""Pydantic schemas for onboarding requests and user responses.

Request bodies are decoded in two passes. First the structural pass:
unknown fields are forbidden and every field is a StrictStr, so a number
where a string belongs is a type mismatch, not a silent coercion. Missing
fields default to "" like an absent JSON key would. Then validate_fields()
checks presence and format and raises MalformedRequest with the message
the client sees.
"""

from datetime import datetime
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, StrictStr

from flowapi.auth.identity import IdentityProvider
from flowapi.errors import MalformedRequest

SIGNUP_STEP_CHECK = "1"
SIGNUP_STEP_REGISTER = "2"

_PROFILE_FIELDS = ("dni", "name", "lastname_main", "lastname_secondary", "address")


def is_valid_email(address: str) -> bool:
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _check_idp(idp: str) -> None:
    if not idp:
        raise MalformedRequest("missing required 'idp' field")
    if idp not in {p.value for p in IdentityProvider}:
        raise MalformedRequest("invalid 'idp' value")


class StrictBody(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ─── Login ──────────────────────────────────────────────

class LoginRequest(StrictBody):
    idp: StrictStr = ""

    def validate_fields(self) -> None:
        _check_idp(self.idp)


# ─── Signup ─────────────────────────────────────────────

class UserInfoSignup(StrictBody):
    dni: StrictStr = ""
    name: StrictStr = ""
    lastname_main: StrictStr = ""
    lastname_secondary: StrictStr = ""
    address: StrictStr = ""

    def validate_fields(self) -> None:
        for field in _PROFILE_FIELDS:
            if not getattr(self, field):
                raise MalformedRequest(f"user_info missing required '{field}' field")


class SignupRequest(StrictBody):
    step: StrictStr = ""
    idp: StrictStr = ""
    user_info: Optional[UserInfoSignup] = None

    def validate_fields(self) -> None:
        """Step 1 ignores user_info; step 2 requires a complete one."""
        _check_idp(self.idp)
        if self.step not in (SIGNUP_STEP_CHECK, SIGNUP_STEP_REGISTER):
            raise MalformedRequest("invalid 'step' value")
        if self.step == SIGNUP_STEP_REGISTER:
            if self.user_info is None:
                raise MalformedRequest("missing User Information in 'user_info' field")
            self.user_info.validate_fields()


# ─── Direct registration ────────────────────────────────

class UserCreateRequest(StrictBody):
    email: StrictStr = ""
    dni: StrictStr = ""
    name: StrictStr = ""
    lastname_main: StrictStr = ""
    lastname_secondary: StrictStr = ""
    address: StrictStr = ""

    def validate_fields(self) -> None:
        if not self.email:
            raise MalformedRequest("missing required 'email' field")
        if not is_valid_email(self.email):
            raise MalformedRequest("invalid email")
        for field in _PROFILE_FIELDS:
            if not getattr(self, field):
                raise MalformedRequest(f"missing required '{field}' field")


# ─── Responses ──────────────────────────────────────────

class UserRead(BaseModel):
    id: int
    email: str
    role: str
    dni: str
    name: str
    lastname_main: str
    lastname_secondary: str
    address: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokensRead(BaseModel):
    access_token: str
    expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime

    model_config = {"from_attributes": True}


class UserAccessResponse(BaseModel):
    """Successful login/registration: the profile plus fresh tokens."""
    user_info: UserRead
    tokens: TokensRead

    @classmethod
    def build(cls, user, tokens) -> "UserAccessResponse":
        return cls(
            user_info=UserRead.model_validate(user),
            tokens=TokensRead.model_validate(tokens),
        )
