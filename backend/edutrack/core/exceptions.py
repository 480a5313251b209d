"""
Custom Exceptions for EduTrack
==============================

Every failure a service can report is one of these. Each class carries the
HTTP status it maps to, so endpoints simply let them propagate and the
handlers in edutrack.main render the response envelope.

Usage:
    from edutrack.core.exceptions import StudentNotFoundError, ValidationError

    if not student:
        raise StudentNotFoundError(student_id)

    if not payload.batch_id:
        raise ValidationError("Batch is required for students", field="batchId")
"""

import re
from typing import Optional, Any, Dict, List


class EduTrackError(Exception):
    """Base exception for all EduTrack errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(EduTrackError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class AuthorizationError(EduTrackError):
    """Principal resolved but the scope check failed"""

    status_code = 403

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(message, code="FORBIDDEN")


# ============================================
# Validation Errors
# ============================================

class ValidationError(EduTrackError):
    """Malformed or missing input"""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None
    ):
        if errors is None and field:
            errors = [{"field": field, "message": message}]
        super().__init__(message, code="VALIDATION_ERROR", details={"errors": errors or []})
        self.field = field
        self.errors = errors or []


class InvalidTransitionError(ValidationError):
    """Status change not permitted by the lifecycle graph"""

    def __init__(self, entity: str, current: str, requested: str):
        super().__init__(
            f"Cannot change {entity} status from '{current}' to '{requested}'",
            field="status",
        )
        self.code = "INVALID_TRANSITION"
        self.current = current
        self.requested = requested


# ============================================
# Resource Errors
# ============================================

class ResourceNotFoundError(EduTrackError):
    """Requested resource not found"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str = None):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"
        super().__init__(message, code="NOT_FOUND")
        self.resource_type = resource_type
        self.resource_id = resource_id


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: str = None):
        super().__init__("User", user_id)


class StudentNotFoundError(ResourceNotFoundError):
    def __init__(self, student_id: str = None):
        super().__init__("Student", student_id)


class BatchNotFoundError(ResourceNotFoundError):
    def __init__(self, batch_id: str = None):
        super().__init__("Batch", batch_id)


class CourseNotFoundError(ResourceNotFoundError):
    def __init__(self, course_id: str = None):
        super().__init__("Course", course_id)


class AssignmentNotFoundError(ResourceNotFoundError):
    def __init__(self, assignment_id: str = None):
        super().__init__("Assignment", assignment_id)


class ReportNotFoundError(ResourceNotFoundError):
    def __init__(self, report_id: str = None):
        super().__init__("Report", report_id)


class ConflictError(EduTrackError):
    """Uniqueness violation on a named field"""

    status_code = 409

    def __init__(self, field: str):
        super().__init__(
            f"A record with this {field} already exists",
            code="CONFLICT",
            details={"errors": [{"field": field, "message": f"{field} must be unique"}]},
        )
        self.field = field


# ============================================
# Workflow & Service Errors
# ============================================

class TransactionAbortedError(EduTrackError):
    """A workflow step failed after earlier steps; everything was rolled back"""

    status_code = 500

    def __init__(self, operation: str):
        super().__init__(
            f"{operation} failed and was rolled back",
            code="TRANSACTION_ABORTED",
            details={"operation": operation},
        )
        self.operation = operation


class ServiceUnavailableError(EduTrackError):
    """Store or storage collaborator unreachable or timed out; safe to retry"""

    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable, please retry"):
        super().__init__(message, code="SERVICE_UNAVAILABLE")


class StorageError(ServiceUnavailableError):
    """File storage read/write failed"""

    def __init__(self, message: str = "File storage unavailable"):
        super().__init__(message)
        self.code = "STORAGE_ERROR"


# ============================================
# Helper Functions
# ============================================

# Column names as exposed to API callers
CONFLICT_FIELD_NAMES = {
    "email": "email",
    "username": "username",
    "roll_number": "rollNumber",
    "code": "code",
    "user_id": "userId",
}

# Compound keys reported under one name
COMPOSITE_CONFLICT_NAMES = {
    frozenset({"student_id", "course_id", "date"}): "attendance",
    frozenset({"batch_id", "student_id"}): "batchMembership",
    frozenset({"course_id", "student_id"}): "enrollment",
    frozenset({"assignment_id", "student_id"}): "submission",
}

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: ([\w.]+(?:, [\w.]+)*)")
_POSTGRES_KEY = re.compile(r"Key \(([\w, ]+)\)=")


def conflict_from_integrity_error(error: Exception) -> ConflictError:
    """Translate a store-level duplicate-key rejection into a ConflictError"""
    text = str(getattr(error, "orig", None) or error)
    columns: List[str] = []

    match = _SQLITE_UNIQUE.search(text)
    if match:
        columns = [part.strip().split(".")[-1] for part in match.group(1).split(",")]
    else:
        match = _POSTGRES_KEY.search(text)
        if match:
            columns = [part.strip() for part in match.group(1).split(",")]

    composite = COMPOSITE_CONFLICT_NAMES.get(frozenset(columns))
    if composite:
        return ConflictError(composite)
    for column in columns:
        if column in CONFLICT_FIELD_NAMES:
            return ConflictError(CONFLICT_FIELD_NAMES[column])
    if columns:
        return ConflictError(", ".join(columns))
    return ConflictError("record")


def error_response(error: EduTrackError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    body: Dict[str, Any] = {
        "success": False,
        "message": error.message,
    }
    errors = error.details.get("errors") if error.details else None
    if errors:
        body["errors"] = errors
    return body
