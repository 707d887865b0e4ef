"""In-memory UserStore.

Users live in a dict keyed by id with email and dni indexes standing in
for the unique constraints. The check-and-insert runs under a lock so
concurrent creates behave like the database: one wins, the other gets
UserConflictError. Records are copied in and out, so callers can never
mutate a stored row.
"""

import asyncio
from typing import Optional

from flowapi.db.models import User, utcnow
from flowapi.db.store import UserConflictError, UserNotFoundError

_FIELDS = (
    "id",
    "email",
    "role",
    "dni",
    "name",
    "lastname_main",
    "lastname_secondary",
    "address",
    "created_at",
)


def _copy(user: User) -> User:
    return User(**{f: getattr(user, f) for f in _FIELDS})


class InMemoryUserStore:
    def __init__(self):
        self._users: dict[int, User] = {}
        self._by_email: dict[str, int] = {}
        self._by_dni: dict[str, int] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()
        # Names of the operations called, in order
        self.calls: list[str] = []

    def __len__(self) -> int:
        return len(self._users)

    async def get_user(self, email: str) -> Optional[User]:
        self.calls.append("get_user")
        user_id = self._by_email.get(email)
        if user_id is None:
            return None
        return _copy(self._users[user_id])

    async def create_user(self, user: User) -> User:
        self.calls.append("create_user")
        async with self._lock:
            if user.email in self._by_email:
                raise UserConflictError("email")
            if user.dni in self._by_dni:
                raise UserConflictError("dni")
            stored = _copy(user)
            stored.id = self._next_id
            stored.created_at = utcnow()
            self._next_id += 1
            self._users[stored.id] = stored
            self._by_email[stored.email] = stored.id
            self._by_dni[stored.dni] = stored.id
        return _copy(stored)

    async def delete_user(self, user_id: int) -> None:
        self.calls.append("delete_user")
        async with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            del self._by_email[user.email]
            del self._by_dni[user.dni]

    async def ping(self) -> None:
        return None
