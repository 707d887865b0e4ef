"""SQLAlchemy ORM models — single source of truth for the database schema.

One table: users. Email and dni each carry a named unique constraint so
a violation can be traced back to the field that collided.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ROLE_CUSTOMER = "customer"

UQ_USERS_EMAIL = "uq_users_email"
UQ_USERS_DNI = "uq_users_dni"


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A registered person.

    Self-registered users always get the "customer" role. id and
    created_at are assigned by the store on insert.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name=UQ_USERS_EMAIL),
        UniqueConstraint("dni", name=UQ_USERS_DNI),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_CUSTOMER)
    dni: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    lastname_main: Mapped[str] = mapped_column(String(100), nullable=False)
    lastname_secondary: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"
