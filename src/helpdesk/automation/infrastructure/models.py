"""
Automation Infrastructure Models
================================

SQLAlchemy ORM models for users and round-robin cursors.
"""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.infrastructure.database import Base


class UserModel(Base):
    """
    Database model for User entity.

    Maps to the 'users' table.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RoundRobinCursorModel(Base):
    """
    Last assigned position per role.

    ``version`` is a mapper version counter, so concurrent advances from
    different processes cannot both succeed.
    """
    __tablename__ = "round_robin_cursors"

    role: Mapped[str] = mapped_column(String(100), primary_key=True)
    last_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
