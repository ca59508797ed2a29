# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every sale, return and payroll approval must be attributable. Uses
bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Badge codes are random and stored as SHA-256 hashes, like session tokens
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets

import bcrypt
from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_CASHIER, ROLES
from ..time_utils import utcnow
from .concurrency import atomic
from .session_service import hash_token, revoke_all_user_sessions


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises ValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash with the configured cost factor."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    name: str,
    role: str = ROLE_CASHIER,
) -> User:
    """
    Create a staff account.

    Raises:
        ValidationError: bad role, blank fields, weak password
        ConflictError: username or email already taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not username or not email or not name:
        raise ValidationError("username, email and name are required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    password_hash = hash_password(password)

    with atomic():
        existing = db.session.query(User.id).filter(
            or_(User.username == username, User.email == email)
        ).first()
        if existing:
            raise ConflictError("Username or email already exists")

        user = User(
            username=username,
            email=email,
            name=name,
            role=role,
            password_hash=password_hash,
            is_active=True,
        )
        db.session.add(user)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Username or email already exists") from exc

    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(role: str | None = None, include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username).all()


def authenticate(username_or_email: str, password: str) -> User | None:
    """
    Returns the active User if credentials are valid, None otherwise.
    Updates last_login_at on success.
    """
    if not username_or_email or not password:
        return None

    ident = username_or_email.strip()
    user = db.session.query(User).filter(
        or_(User.username == ident, User.email == ident.lower()),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def authenticate_barcode(code: str) -> User | None:
    """Badge login: resolve a scanned code to its active user."""
    if not code or not code.strip():
        return None

    user = db.session.query(User).filter(
        User.barcode == hash_token(code.strip()),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_barcode(user_id: int) -> str:
    """
    Issue a new badge code for a user, replacing any previous one.

    Returns the plaintext code (shown once); only its hash is stored.
    """
    code = secrets.token_hex(8).upper()
    with atomic():
        user = get_user(user_id)
        user.barcode = hash_token(code)
    return code


def deactivate_user(user_id: int) -> User:
    """Disable the account and revoke every live token it holds."""
    with atomic():
        user = get_user(user_id)
        user.is_active = False
    revoke_all_user_sessions(user_id, reason="User deactivated")
    return user
