"""Query helpers and local CRUD for ``User`` records."""

from __future__ import annotations
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from userbridge.core.errors import ErrorCode, ServiceError
from userbridge.core.models import LOCAL_ROLES
from userbridge.core.validators import validate_email, validate_local_role, validate_username, require

from .database import Database
from .models import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Persistence helpers bound to one session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self._session.get(User, user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        return self._session.execute(stmt).scalar_one_or_none()

    def exists_by_username(self, username: str, exclude_id: Optional[int] = None) -> bool:
        user = self.get_by_username(username)
        return user is not None and user.id != exclude_id

    def exists_by_email(self, email: str, exclude_id: Optional[int] = None) -> bool:
        user = self.get_by_email(email)
        return user is not None and user.id != exclude_id

    def list_users(self) -> list[User]:
        stmt = select(User).order_by(User.id)
        return list(self._session.execute(stmt).scalars().all())

    def add(self, user: User) -> User:
        self._session.add(user)
        self._session.flush()
        return user

    def delete(self, user: User) -> None:
        self._session.delete(user)
        self._session.flush()


def _conflict(field: str, value: str, username: Optional[str]) -> ServiceError:
    return ServiceError(
        ErrorCode.LOCAL_CONFLICT,
        f"A user with {field} '{value}' already exists",
        409,
        username,
        field=field,
    )


def _validation(exc: ValueError, username: Optional[str]) -> ServiceError:
    return ServiceError(ErrorCode.VALIDATION, str(exc), 400, username)


class LocalUserService:
    """Local user management: check-then-insert, with the unique index as final guard."""

    def __init__(self, database: Database):
        self.database = database

    def list_users(self) -> list[dict]:
        with self.database.session() as session:
            return [user.to_dict() for user in UserRepository(session).list_users()]

    def get_user(self, user_id: int) -> dict:
        with self.database.session() as session:
            user = UserRepository(session).get_by_id(user_id)
            if user is None:
                raise ServiceError(ErrorCode.NOT_FOUND, f"User {user_id} not found", 404)
            return user.to_dict()

    def find_by_username(self, username: str) -> Optional[User]:
        with self.database.session() as session:
            return UserRepository(session).get_by_username(username)

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role: str = "USER",
        enabled: bool = True,
        keycloak_user_id: Optional[str] = None,
    ) -> dict:
        """Insert a new local record.

        Raises:
            ServiceError: ValidationError on bad input, LocalConflict on a
                duplicate username or email
        """
        try:
            username = validate_username(username)
            email = validate_email(email)
            password = require(password, "password")
            role = validate_local_role(role, LOCAL_ROLES)
        except ValueError as exc:
            raise _validation(exc, username) from exc

        try:
            with self.database.session() as session:
                repo = UserRepository(session)
                if repo.exists_by_username(username):
                    raise _conflict("username", username, username)
                if repo.exists_by_email(email):
                    raise _conflict("email", email, username)
                user = repo.add(
                    User(
                        username=username,
                        email=email,
                        password_hash=generate_password_hash(password),
                        role=role,
                        enabled=bool(enabled),
                        keycloak_user_id=keycloak_user_id,
                    )
                )
                created = user.to_dict()
        except IntegrityError as exc:
            logger.warning("[store] Unique constraint hit while creating '%s': %s", username, exc.orig)
            raise ServiceError(ErrorCode.LOCAL_CONFLICT, "Username or email already exists", 409, username) from exc

        logger.info("[store] Local user '%s' created (id=%s)", username, created["id"])
        return created

    def update_user(self, user_id: int, changes: dict[str, Any]) -> dict:
        """Update username/email/role/enabled of an existing record."""
        try:
            with self.database.session() as session:
                repo = UserRepository(session)
                user = repo.get_by_id(user_id)
                if user is None:
                    raise ServiceError(ErrorCode.NOT_FOUND, f"User {user_id} not found", 404)
                try:
                    if changes.get("username") is not None:
                        username = validate_username(changes["username"])
                        if repo.exists_by_username(username, exclude_id=user.id):
                            raise _conflict("username", username, user.username)
                        user.username = username
                    if changes.get("email") is not None:
                        email = validate_email(changes["email"])
                        if repo.exists_by_email(email, exclude_id=user.id):
                            raise _conflict("email", email, user.username)
                        user.email = email
                    if changes.get("role") is not None:
                        user.role = validate_local_role(changes["role"], LOCAL_ROLES)
                except ValueError as exc:
                    raise _validation(exc, user.username) from exc
                if changes.get("enabled") is not None:
                    user.enabled = bool(changes["enabled"])
                session.flush()
                updated = user.to_dict()
        except IntegrityError as exc:
            raise ServiceError(ErrorCode.LOCAL_CONFLICT, "Username or email already exists", 409) from exc

        logger.info("[store] Local user %s updated", user_id)
        return updated

    def delete_user(self, user_id: int) -> None:
        with self.database.session() as session:
            repo = UserRepository(session)
            user = repo.get_by_id(user_id)
            if user is None:
                raise ServiceError(ErrorCode.NOT_FOUND, f"User {user_id} not found", 404)
            repo.delete(user)
        logger.info("[store] Local user %s deleted", user_id)
