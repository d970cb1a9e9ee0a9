"""
Domain errors for the classroom, enrollment and word-list services.

Every error is detected locally and carries a message a teacher can act on
without developer help. The app factory registers a handler that renders any
``AppError`` as a JSON failure with its ``status_code``.
"""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """Base class for structured, user-facing failures."""

    status_code = 400
    error_code = "ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message, "code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class AuthenticationError(AppError):
    status_code = 401
    error_code = "AUTHENTICATION_REQUIRED"


class Forbidden(AppError):
    """Role or ownership check failed."""

    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(AppError):
    status_code = 404
    error_code = "NOT_FOUND"


class ClassroomNotFound(NotFound):
    error_code = "CLASSROOM_NOT_FOUND"

    def __init__(self, classroom_id: int | None = None, message: str = "Classroom not found"):
        super().__init__(message, {"classroomId": classroom_id} if classroom_id is not None else None)


class AlreadyEnrolled(AppError):
    """The student already holds an active enrollment somewhere."""

    error_code = "ALREADY_ENROLLED"

    def __init__(self, message: str, enrollment: Optional[dict] = None):
        details = {}
        if enrollment:
            details = {
                "classroomId": enrollment.get("classroom_id"),
                "classroomName": enrollment.get("classroom_name"),
                "teacherName": enrollment.get("teacher_name"),
                "enrollmentDate": enrollment.get("enrollment_date"),
            }
        super().__init__(message, details)
        self.enrollment = enrollment


class ClassroomFull(AppError):
    error_code = "CLASSROOM_FULL"

    def __init__(self, classroom: dict, message: str | None = None):
        cap = classroom.get("max_students")
        super().__init__(
            message or f'Classroom "{classroom.get("name")}" is full ({cap}/{cap})',
            {"classroomId": classroom.get("id"), "maxStudents": cap},
        )


class NotEnrolled(AppError):
    error_code = "NOT_ENROLLED"

    def __init__(self, message: str = "The student is not enrolled in any active classroom"):
        super().__init__(message)


class ValidationError(AppError):
    error_code = "VALIDATION_ERROR"


class DuplicateWord(AppError):
    error_code = "DUPLICATE_WORD"

    def __init__(self, word: str, message: str | None = None):
        super().__init__(message or f'The word "{word}" already exists', {"word": word})
