"""Accounts, sessions and access checks.

Users live in the ``users`` table; the signed-in user's id is kept in the
Flask session cookie. One-off sign-in links carry an ``itsdangerous`` token
that :meth:`AuthService.set_session_from_token` exchanges for a session.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from flask import g, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthRequired, PermissionDenied, ValidationError
from .models import ROLE_USER, USERS, User
from .saved import load_saved_ids
from .session import SessionContext
from .storage import TableStore

SESSION_USER_KEY = "user_id"
TOKEN_SALT = "recipehub-session-token"
MIN_PASSWORD_LENGTH = 6

F = TypeVar("F", bound=Callable[..., Any])


class AuthService:
    def __init__(self, tables: TableStore, *, secret_key: str, token_max_age: int = 3600) -> None:
        self._tables = tables
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self._token_max_age = token_max_age

    def sign_up(self, *, user_name: str, email: str, password: str) -> User:
        user_name = user_name.strip()
        email = email.strip().lower()
        if not user_name or not email:
            raise ValidationError("Please provide a name and an email address.")
        _check_password(password)
        if self._tables.select(USERS, filters={"email": email}, limit=1):
            raise ValidationError("An account with this email already exists.")

        row = self._tables.insert(
            USERS,
            {
                "user_name": user_name,
                "email": email,
                "role": ROLE_USER,
                "about_me": "",
                "image_url": None,
                "password_hash": generate_password_hash(password),
            },
        )
        return User.from_row(row)

    def sign_in(self, *, email: str, password: str) -> User:
        rows = self._tables.select(USERS, filters={"email": email.strip().lower()}, limit=1)
        if not rows or not check_password_hash(rows[0].get("password_hash") or "", password):
            raise ValidationError("Invalid email or password.")

        user = User.from_row(rows[0])
        self._start_session(user.user_id)
        return user

    def sign_out(self) -> None:
        session.clear()

    def current_session(self) -> Optional[str]:
        return session.get(SESSION_USER_KEY)

    def current_user(self) -> Optional[User]:
        user_id = self.current_session()
        if not user_id:
            return None
        rows = self._tables.select(USERS, filters={"user_id": user_id}, limit=1)
        if not rows:
            # The account was removed while the session was still alive.
            session.clear()
            return None
        return User.from_row(rows[0])

    def issue_token(self, user_id: str) -> str:
        return self._serializer.dumps({"user_id": user_id})

    def set_session_from_token(self, token: str) -> User:
        try:
            payload = self._serializer.loads(token, max_age=self._token_max_age)
        except SignatureExpired:
            raise AuthRequired("This sign-in link has expired.") from None
        except BadSignature:
            raise AuthRequired("This sign-in link is invalid.") from None

        rows = self._tables.select(USERS, filters={"user_id": payload.get("user_id")}, limit=1)
        if not rows:
            raise AuthRequired("This sign-in link is invalid.")
        user = User.from_row(rows[0])
        self._start_session(user.user_id)
        return user

    def update_password(self, user: Optional[User], *, current_password: str, new_password: str) -> None:
        if user is None:
            raise AuthRequired("Please log in to change your password.")
        rows = self._tables.select(USERS, filters={"user_id": user.user_id}, limit=1)
        if not rows or not check_password_hash(rows[0].get("password_hash") or "", current_password):
            raise ValidationError("Your current password is incorrect.")
        _check_password(new_password)
        self._tables.update(USERS, {"user_id": user.user_id}, {"password_hash": generate_password_hash(new_password)})

    def load_context(self) -> SessionContext:
        user = self.current_user()
        if user is None:
            return SessionContext()
        return SessionContext(user=user, saved_ids=load_saved_ids(self._tables, user.user_id))

    def _start_session(self, user_id: str) -> None:
        session.clear()
        session[SESSION_USER_KEY] = user_id


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Passwords must be at least {MIN_PASSWORD_LENGTH} characters long.")


def current_context() -> SessionContext:
    return g.get("context") or SessionContext()


def login_required(view: F) -> F:
    @wraps(view)
    def wrapped(*args: Any, **kwargs: Any) -> Any:
        if not current_context().is_authenticated:
            raise AuthRequired("Please log in first.")
        return view(*args, **kwargs)

    return wrapped  # type: ignore[return-value]


def admin_required(view: F) -> F:
    @wraps(view)
    def wrapped(*args: Any, **kwargs: Any) -> Any:
        context = current_context()
        if not context.is_authenticated:
            raise AuthRequired("Please log in first.")
        if not context.is_admin:
            raise PermissionDenied("Only administrators can do that.")
        return view(*args, **kwargs)

    return wrapped  # type: ignore[return-value]


__all__ = ["AuthService", "admin_required", "current_context", "login_required"]
