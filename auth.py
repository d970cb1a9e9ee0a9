"""
User Authentication — Flask-Login with bearer tokens.

Provides register, login and verify routes for the mobile/web client.
Tokens are opaque signed strings (itsdangerous); the rest of the app only
ever sees the resolved ``User`` (id, role, name).
Uses werkzeug.security for password hashing.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import UserMixin, current_user, login_required
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from database import get_db
from errors import AuthenticationError, ValidationError
from extensions import limiter, login_manager
from permissions import Role

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
TOKEN_SALT = "spelling-api-token"

auth_bp = Blueprint("auth", __name__)


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: int, name: str, email: str, role: Role | str, active: bool = True):
        self.id = id
        self.name = name
        self.email = email
        self.role = Role.parse(role)
        self._active = active

    @property
    def is_active(self):
        return self._active

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role.value}

    @staticmethod
    def from_row(row) -> "User":
        return User(row["id"], row["name"], row["email"], row["role"], bool(row["active"]))

    @staticmethod
    def get(user_id: int):
        db = get_db()
        row = db.execute(
            "SELECT id, name, email, role, active FROM users WHERE id = ?", (user_id,),
        ).fetchone()
        return User.from_row(row) if row else None

    @staticmethod
    def get_for_login(identifier: str):
        """Look a user up by email, or by display name as the mobile app allows."""
        db = get_db()
        return db.execute(
            "SELECT id, name, email, password_hash, role, active FROM users "
            "WHERE email = ? OR name = ? ORDER BY (email = ?) DESC LIMIT 1",
            (identifier.lower(), identifier, identifier.lower()),
        ).fetchone()


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    return _serializer().dumps({"id": user.id, "role": user.role.value})


def verify_token(token: str) -> User | None:
    """Resolve a bearer token to an active user, or None."""
    try:
        payload = _serializer().loads(token, max_age=current_app.config.get("TOKEN_MAX_AGE"))
    except SignatureExpired:
        logger.info("Rejected expired token")
        return None
    except BadSignature:
        return None
    user = User.get(payload.get("id"))
    if user is None or not user.is_active:
        return None
    return user


@login_manager.user_loader
def load_user(user_id):
    return User.get(int(user_id))


@login_manager.request_loader
def load_user_from_request(req):
    header = req.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return verify_token(token.strip())


@login_manager.unauthorized_handler
def unauthorized():
    err = AuthenticationError("Access token required")
    return jsonify(err.to_dict()), err.status_code


def _validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    return None


@auth_bp.route("/api/auth/register", methods=["POST"])
@limiter.limit("10 per hour")
def register():
    data = request.get_json(silent=True) or {}
    name = str(data.get("name", "")).strip()
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))

    if not name or not email or not password or not data.get("role"):
        raise ValidationError("All fields are required")

    role = Role.parse(data.get("role"))

    pw_error = _validate_password(password)
    if pw_error:
        raise ValidationError(pw_error)

    db = get_db()
    existing = db.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
    if existing:
        raise ValidationError("This email is already registered")

    cur = db.execute(
        "INSERT INTO users (name, email, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?)",
        (name, email, generate_password_hash(password), role.value, datetime.now().isoformat()),
    )
    user = User(cur.lastrowid, name, email, role)
    log_event("register", user.id, f"email={email} role={role.value}")

    return jsonify({
        "success": True,
        "message": "User registered successfully",
        "user": user.to_dict(),
        "token": issue_token(user),
    }), 201


@auth_bp.route("/api/auth/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    data = request.get_json(silent=True) or {}
    identifier = str(data.get("email", "")).strip()
    password = str(data.get("password", ""))

    if not identifier or not password:
        raise ValidationError("Email and password are required")

    row = User.get_for_login(identifier)
    if not row or not row["password_hash"] or not check_password_hash(row["password_hash"], password):
        log_event("login_failed", row["id"] if row else None, f"identifier={identifier}")
        raise AuthenticationError("Invalid credentials")

    if not row["active"]:
        log_event("login_inactive", row["id"])
        raise AuthenticationError("This account has been deactivated")

    user = User.from_row(row)
    log_event("login_success", user.id)
    return jsonify({
        "success": True,
        "message": "Login successful",
        "user": user.to_dict(),
        "token": issue_token(user),
    })


@auth_bp.route("/api/auth/verify")
@login_required
def verify():
    return jsonify({"success": True, "valid": True, "user": current_user.to_dict()})
