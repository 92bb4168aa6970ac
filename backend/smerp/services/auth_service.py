# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every action must be attributable. Uses bcrypt for password hashing and
validates password strength before anything is stored.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, upper, lower, digit and special character required
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import json
import re

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import User
from smerp.time_utils import utcnow
from .activity_service import record_activity


USER_ROLES = ("admin", "manager", "staff")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash. bcrypt.checkpw is timing-safe.

    A malformed stored hash is treated as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        current_app.logger.warning("Malformed password hash encountered during login")
        return False


def create_user(
    username: str,
    password: str,
    name: str,
    *,
    email: str | None = None,
    role: str = "staff",
    actor_id: int | None = None,
    commit: bool = True,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError / PasswordValidationError: bad input or weak password
        ConflictError: username already taken
    """
    username = (username or "").strip()
    name = (name or "").strip()
    if not username:
        raise ValidationError("username is required")
    if not name:
        raise ValidationError("name is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError("Username already exists")

    user = User(
        username=username,
        name=name,
        email=email,
        role=role,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.flush()

    record_activity(actor_id, "create", f"user:{user.id}", f"Created user {username}")

    if commit:
        db.session.commit()
    return user


def update_user(user_id: int, patch: dict, *, actor_id: int | None = None) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")

    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    for field in ("name", "email", "role", "is_active"):
        if field in patch:
            setattr(user, field, patch[field])

    if "preferences" in patch:
        prefs = patch["preferences"]
        if prefs is not None and not isinstance(prefs, dict):
            raise ValidationError("preferences must be an object")
        user.preferences = json.dumps(prefs) if prefs is not None else None

    if patch.get("password"):
        user.password_hash = hash_password(patch["password"])

    record_activity(actor_id, "update", f"user:{user.id}", f"Updated user {user.username}")
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user by username and password.

    Returns None for unknown users, inactive users and wrong passwords alike.
    Records last_login_at on success.
    """
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    record_activity(user.id, "login", f"user:{user.id}", None)
    db.session.commit()
    return user
