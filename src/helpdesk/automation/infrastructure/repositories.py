"""
Automation Infrastructure Repositories
======================================

SQLAlchemy implementations of the user and round-robin cursor repositories.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from helpdesk.automation.application import IRoundRobinCursorRepository, IUserRepository
from helpdesk.automation.domain import RoundRobinCursor, User
from helpdesk.automation.infrastructure.models import RoundRobinCursorModel, UserModel
from helpdesk.core import ConflictException
from helpdesk.infrastructure.database import select_for_update


def _user_to_domain(model: UserModel) -> User:
    return User(
        id=model.id,
        name=model.name,
        email=model.email,
        role=model.role,
        is_active=model.is_active,
    )


def _cursor_to_domain(model: RoundRobinCursorModel) -> RoundRobinCursor:
    return RoundRobinCursor(role=model.role, last_index=model.last_index, version=model.version)


class SQLAlchemyUserRepository(IUserRepository):
    """SQLAlchemy implementation of user repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, user: User) -> User:
        model = UserModel(name=user.name, email=user.email, role=user.role, is_active=user.is_active)
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            await self._session.rollback()
            raise ConflictException(f"User with email '{user.email}' already exists") from e
        return _user_to_domain(model)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        model = await self._session.get(UserModel, user_id)
        return _user_to_domain(model) if model else None

    async def list_by_role(self, role: str) -> List[User]:
        stmt = (
            select(UserModel)
            .where(UserModel.role == role, UserModel.is_active.is_(True))
            .order_by(UserModel.id)
        )
        result = await self._session.execute(stmt)
        return [_user_to_domain(m) for m in result.scalars().all()]

    async def list_all(self) -> List[User]:
        result = await self._session.execute(select(UserModel).order_by(UserModel.id))
        return [_user_to_domain(m) for m in result.scalars().all()]


class SQLAlchemyRoundRobinCursorRepository(IRoundRobinCursorRepository):
    """
    Round-robin cursors stored one row per role.

    ``advance`` is a compare-and-set on the row version; the first advance
    of a role inserts the row, and a concurrent insert fails on the primary
    key. Reading with ``for_update`` holds the row until commit, so the next
    assigner waits and reads the advanced cursor instead of failing the
    compare-and-set.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, role: str, for_update: bool = False) -> RoundRobinCursor:
        if for_update:
            stmt = select_for_update(RoundRobinCursorModel, RoundRobinCursorModel.role == role)
            model = (await self._session.execute(stmt)).scalar_one_or_none()
        else:
            model = await self._session.get(RoundRobinCursorModel, role)
        if model is None:
            return RoundRobinCursor(role=role)
        return _cursor_to_domain(model)

    async def advance(self, role: str, expected_version: int, new_index: int) -> RoundRobinCursor:
        model = await self._session.get(RoundRobinCursorModel, role)

        if model is None:
            if expected_version != 0:
                raise ConflictException(
                    "Round-robin cursor disappeared",
                    {"role": role, "expected_version": expected_version}
                )
            model = RoundRobinCursorModel(role=role, last_index=new_index)
            self._session.add(model)
            try:
                await self._session.flush()
            except IntegrityError as e:
                raise ConflictException("Round-robin cursor was created concurrently", {"role": role}) from e
            return _cursor_to_domain(model)

        if model.version != expected_version:
            raise ConflictException(
                "Round-robin cursor was advanced concurrently",
                {"role": role, "expected_version": expected_version, "stored_version": model.version}
            )

        model.last_index = new_index
        try:
            await self._session.flush()
        except StaleDataError as e:
            raise ConflictException(
                "Round-robin cursor was advanced concurrently",
                {"role": role, "expected_version": expected_version}
            ) from e
        return _cursor_to_domain(model)

    async def list_all(self) -> List[RoundRobinCursor]:
        result = await self._session.execute(select(RoundRobinCursorModel).order_by(RoundRobinCursorModel.role))
        return [_cursor_to_domain(m) for m in result.scalars().all()]
