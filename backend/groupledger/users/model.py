"""Read-only view of the identity service's USERS table."""
from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.extensions import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column("user_id", Integer, primary_key=True, autoincrement=True)
    username: Mapped[Optional[str]] = mapped_column("username", String(100), index=True)
    email: Mapped[str] = mapped_column("email", String(255), unique=True, nullable=False)
