"""
Identity, roles and the single authorization predicate.

Every store operation that touches a specific classroom, student, word or
progress record calls ``authorize(actor, action, resource)`` before acting.
Role capabilities live in one table; resource-level rules (ownership,
parent links, enrollment) live next to it, so the whole access policy can be
read and tested without going through HTTP.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NoReturn, Optional, Union

from database import get_db
from errors import AuthenticationError, Forbidden, ValidationError


class Role(str, Enum):
    TEACHER = "teacher"
    PARENT = "parent"
    CHILD = "child"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Accept canonical values and the mobile client's legacy labels."""
        if isinstance(value, Role):
            return value
        key = str(value or "").strip().lower()
        if key in LEGACY_ROLE_LABELS:
            return LEGACY_ROLE_LABELS[key]
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(
                f"Invalid role '{value}'. Expected one of: teacher, parent, child"
            ) from None


LEGACY_ROLE_LABELS = {
    "docente": Role.TEACHER,
    "representante": Role.PARENT,
    "nino": Role.CHILD,
    "niño": Role.CHILD,
}


@dataclass(frozen=True)
class Identity:
    """Resolved credential: who is asking."""

    id: int
    role: Role
    name: str = ""


class Action(Enum):
    CREATE_CLASSROOM = "create classrooms"
    MANAGE_CLASSROOM = "manage this classroom"
    BROWSE_CLASSROOMS = "browse available classrooms"
    SELF_ENROLL = "enroll themselves in a classroom"
    SEARCH_STUDENTS = "search for students"
    MANAGE_STUDENT = "manage this student"
    VIEW_ROSTER = "view this classroom's students"
    VIEW_CHILDREN = "view linked children"
    MANAGE_WORDS = "manage words"
    EDIT_WORD = "modify this word"
    VIEW_PROGRESS = "view this progress"
    RECORD_SESSION = "record game sessions"
    VIEW_DASHBOARD = "view the teacher dashboard"
    CONFIGURE_GAMES = "configure games"


CAPABILITIES: dict[Role, frozenset[Action]] = {
    Role.TEACHER: frozenset({
        Action.CREATE_CLASSROOM,
        Action.MANAGE_CLASSROOM,
        Action.SEARCH_STUDENTS,
        Action.MANAGE_STUDENT,
        Action.VIEW_ROSTER,
        Action.MANAGE_WORDS,
        Action.EDIT_WORD,
        Action.VIEW_PROGRESS,
        Action.RECORD_SESSION,
        Action.VIEW_DASHBOARD,
        Action.CONFIGURE_GAMES,
    }),
    Role.PARENT: frozenset({
        Action.VIEW_ROSTER,
        Action.VIEW_CHILDREN,
        Action.VIEW_PROGRESS,
        Action.RECORD_SESSION,
    }),
    Role.CHILD: frozenset({
        Action.BROWSE_CLASSROOMS,
        Action.SELF_ENROLL,
        Action.VIEW_PROGRESS,
        Action.RECORD_SESSION,
    }),
}

_uncovered = set(Role) - set(CAPABILITIES)
if _uncovered:
    raise RuntimeError(f"Roles without a capability set: {sorted(r.value for r in _uncovered)}")


# ── Resources ──────────────────────────────────────────────

@dataclass(frozen=True)
class ClassroomRef:
    id: int


@dataclass(frozen=True)
class StudentRef:
    id: int


@dataclass(frozen=True)
class UserRef:
    id: int


@dataclass(frozen=True)
class WordRef:
    id: int
    created_by: int
    classroom_id: Optional[int] = None


Resource = Union[ClassroomRef, StudentRef, UserRef, WordRef]


def _unhandled_role(role: Any) -> NoReturn:
    raise AssertionError(f"Unhandled role: {role!r}")


# ── Resource predicates ────────────────────────────────────

def owns_classroom(teacher_id: int, classroom_id: int) -> bool:
    row = get_db().execute(
        "SELECT 1 FROM classrooms WHERE id = ? AND teacher_id = ?",
        (classroom_id, teacher_id),
    ).fetchone()
    return row is not None


def teaches_student(teacher_id: int, student_id: int) -> bool:
    """True when the student's active enrollment is in one of the teacher's classrooms."""
    row = get_db().execute(
        "SELECT 1 FROM student_enrollments se "
        "JOIN classrooms c ON se.classroom_id = c.id "
        "WHERE se.student_id = ? AND se.status = 'active' AND c.teacher_id = ?",
        (student_id, teacher_id),
    ).fetchone()
    return row is not None


def is_linked_parent(parent_id: int, child_id: int) -> bool:
    row = get_db().execute(
        "SELECT 1 FROM parent_child_relationships WHERE parent_id = ? AND child_id = ?",
        (parent_id, child_id),
    ).fetchone()
    return row is not None


def _parent_has_child_in(parent_id: int, classroom_id: int) -> bool:
    row = get_db().execute(
        "SELECT 1 FROM parent_child_relationships pcr "
        "JOIN student_enrollments se ON pcr.child_id = se.student_id "
        "WHERE pcr.parent_id = ? AND se.classroom_id = ? AND se.status = 'active'",
        (parent_id, classroom_id),
    ).fetchone()
    return row is not None


def _rule_manage_classroom(actor: Identity, res: ClassroomRef) -> bool:
    return owns_classroom(actor.id, res.id)


def _rule_manage_student(actor: Identity, res: StudentRef) -> bool:
    return teaches_student(actor.id, res.id)


def _rule_view_roster(actor: Identity, res: ClassroomRef) -> bool:
    if actor.role is Role.TEACHER:
        return owns_classroom(actor.id, res.id)
    if actor.role is Role.PARENT:
        return _parent_has_child_in(actor.id, res.id)
    if actor.role is Role.CHILD:
        return False
    _unhandled_role(actor.role)


def _rule_view_progress(actor: Identity, res: UserRef) -> bool:
    if actor.id == res.id:
        return True
    if actor.role is Role.TEACHER:
        return teaches_student(actor.id, res.id)
    if actor.role is Role.PARENT:
        return is_linked_parent(actor.id, res.id)
    if actor.role is Role.CHILD:
        return False
    _unhandled_role(actor.role)


def _rule_edit_word(actor: Identity, res: WordRef) -> bool:
    if res.created_by == actor.id:
        return True
    return res.classroom_id is not None and owns_classroom(actor.id, res.classroom_id)


RESOURCE_RULES: dict[Action, tuple[Callable[[Identity, Any], bool], str]] = {
    Action.MANAGE_CLASSROOM: (_rule_manage_classroom, "You can only manage your own classrooms"),
    Action.MANAGE_STUDENT: (_rule_manage_student, "Student not found in your classrooms"),
    Action.VIEW_ROSTER: (_rule_view_roster, "You do not have permission to view the students of this classroom"),
    Action.VIEW_PROGRESS: (_rule_view_progress, "You do not have permission to view this progress"),
    Action.EDIT_WORD: (_rule_edit_word, "You can only modify your own words or words of your classrooms"),
}


def _check(actor: Any, action: Action, resource: Optional[Resource]) -> Optional[str]:
    """Return a denial message, or None when the action is allowed."""
    if actor is None or not getattr(actor, "is_authenticated", True):
        raise AuthenticationError("Authentication required")
    role = Role.parse(actor.role)
    if action not in CAPABILITIES[role]:
        return f"Accounts with role '{role.value}' cannot {action.value}"
    rule = RESOURCE_RULES.get(action)
    if rule is None:
        return None
    if resource is None:
        raise ValueError(f"{action.name} needs a resource to check against")
    predicate, denial = rule
    return None if predicate(actor, resource) else denial


def require_capability(actor: Any, action: Action) -> None:
    """Role-only half of ``authorize``, for callers that must look the resource up first."""
    if actor is None or not getattr(actor, "is_authenticated", True):
        raise AuthenticationError("Authentication required")
    role = Role.parse(actor.role)
    if action not in CAPABILITIES[role]:
        raise Forbidden(f"Accounts with role '{role.value}' cannot {action.value}",
                        {"action": action.name})


def can(actor: Any, action: Action, resource: Optional[Resource] = None) -> bool:
    return _check(actor, action, resource) is None


def authorize(actor: Any, action: Action, resource: Optional[Resource] = None,
              message: str | None = None) -> None:
    """Raise Forbidden unless ``actor`` may perform ``action`` on ``resource``."""
    denial = _check(actor, action, resource)
    if denial is not None:
        raise Forbidden(message or denial, {"action": action.name})
