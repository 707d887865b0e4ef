"""User storage.

UserStore is the capability the onboarding flow depends on: look up by
email, create, delete by id. The Postgres implementation lets the
database enforce uniqueness (concurrent creates for the same email or dni
resolve to one success and one UserConflictError) and translates the
violated constraint back to the field name.
"""

from typing import Optional, Protocol

import structlog
from sqlalchemy import delete, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flowapi.db.models import UQ_USERS_DNI, UQ_USERS_EMAIL, User

logger = structlog.get_logger()

_CONSTRAINT_FIELDS = {UQ_USERS_EMAIL: "email", UQ_USERS_DNI: "dni"}


class StoreError(Exception):
    """Any storage failure that is not a uniqueness conflict."""


class UserConflictError(StoreError):
    """A user with the same email or dni already exists."""

    def __init__(self, field: str):
        super().__init__(f"A user already exists with this {field}")
        self.field = field


class UserNotFoundError(StoreError):
    """No user matched the given key."""


class UserStore(Protocol):
    async def get_user(self, email: str) -> Optional[User]: ...

    async def create_user(self, user: User) -> User: ...

    async def delete_user(self, user_id: int) -> None: ...

    async def ping(self) -> None: ...


def conflicting_field(exc: IntegrityError) -> Optional[str]:
    """Return "email"/"dni" if the error is one of our unique constraints."""
    orig = exc.orig
    # asyncpg's UniqueViolationError sits behind SQLAlchemy's adapter
    constraint = getattr(getattr(orig, "__cause__", None), "constraint_name", None)
    haystack = constraint or str(orig)
    for name, field in _CONSTRAINT_FIELDS.items():
        if name in haystack:
            return field
    return None


class SqlUserStore:
    """UserStore backed by the users table through an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, email: str) -> Optional[User]:
        try:
            result = await self.db.execute(select(User).where(User.email == email))
        except SQLAlchemyError as e:
            raise StoreError("Error reading user") from e
        return result.scalars().first()

    async def create_user(self, user: User) -> User:
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            field = conflicting_field(e)
            if field is None:
                raise StoreError("Integrity error creating user") from e
            raise UserConflictError(field) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError("Error creating user") from e
        await self.db.refresh(user)
        return user

    async def delete_user(self, user_id: int) -> None:
        try:
            result = await self.db.execute(delete(User).where(User.id == user_id))
            if result.rowcount != 1:
                await self.db.rollback()
                raise UserNotFoundError(f"User {user_id} not found")
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError("Error deleting user") from e

    async def ping(self) -> None:
        try:
            await self.db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
