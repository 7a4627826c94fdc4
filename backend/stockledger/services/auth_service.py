# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action at the terminal must be attributable to a named user.
Uses bcrypt for password hashing and enforces a minimum password length.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 6 characters required
- Roles are explicit (admin, manager, clerk); nothing is inferred from the username
- Sessions and lockout are handled by the access guard (see access_guard.py)
"""

from __future__ import annotations

import bcrypt
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User
from ..permissions import ROLES, ROLE_ADMIN, ROLE_CLERK, ROLE_MANAGER
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .inventory_store import StorageError


MIN_PASSWORD_LENGTH = 6
USERNAME_MAX_LENGTH = 64

# Installed by `flask system init`
DEFAULT_USERS = (
    ("admin", "CG2024", ROLE_ADMIN),
    ("manager", "FERR2024", ROLE_MANAGER),
    ("clerk", "VENTA2024", ROLE_CLERK),
)


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet the length requirement."""
    pass


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for length before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash
    counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_username(username) -> str:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("Username is required")
    name = username.strip()
    if len(name) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"Username exceeds max length {USERNAME_MAX_LENGTH}")
    return name


def get_user(username: str) -> User | None:
    if not isinstance(username, str) or not username.strip():
        return None
    return db.session.query(User).filter_by(username=username.strip()).first()


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()


def create_user(username: str, password: str, role: str = ROLE_CLERK, *, rounds: int = 12) -> User:
    """
    Create a user with a bcrypt-hashed password.

    Raises:
        ValidationError: bad username or unknown role
        PasswordValidationError: password too short
        ConflictError: username already exists
    """
    name = normalize_username(username)
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    if get_user(name) is not None:
        raise ConflictError("User already exists")

    user = User(
        username=name,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
        is_active=True,
        created_at=utcnow(),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Could not create user: storage unavailable") from exc
    return user


def set_password(user: User, new_password: str, *, rounds: int = 12) -> None:
    user.password_hash = hash_password(new_password, rounds=rounds)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Could not change password: storage unavailable") from exc


def ensure_default_users(*, rounds: int = 12) -> list[str]:
    """Create any missing default users; returns the usernames created."""
    created = []
    for username, password, role in DEFAULT_USERS:
        if get_user(username) is None:
            create_user(username, password, role, rounds=rounds)
            created.append(username)
    return created
