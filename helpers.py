"""
Shared helpers used across blueprints.

Extracted to break circular dependencies between blueprints and auth.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import request
from flask_login import current_user

from errors import AuthenticationError, Forbidden, ValidationError
from permissions import Role


def current_actor():
    """Return the authenticated user, or raise a 401."""
    if not current_user.is_authenticated:
        raise AuthenticationError("Access token required")
    return current_user._get_current_object()


def role_required(*roles: Role) -> Callable:
    """Decorator that requires an authenticated user holding one of ``roles``."""
    allowed = frozenset(roles)

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated(*args: Any, **kwargs: Any) -> Any:
            actor = current_actor()
            if actor.role not in allowed:
                names = " or ".join(sorted(r.value for r in allowed))
                raise Forbidden(f"Only {names} accounts can access this resource")
            return f(*args, **kwargs)
        return decorated
    return decorator


teacher_required = role_required(Role.TEACHER)
parent_required = role_required(Role.PARENT)
child_required = role_required(Role.CHILD)


def json_body() -> dict:
    """Request JSON as a dict; empty dict when absent or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """Coerce a JSON/query value to int with a field-specific message."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


def parse_bool(value: Any) -> bool | None:
    """Interpret query-string style booleans; None when absent."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
