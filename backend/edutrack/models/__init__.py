from edutrack.models.user import User, UserRole, ADMIN_TIER_ROLES
from edutrack.models.student import Student
from edutrack.models.college import College
from edutrack.models.batch import Batch, BatchTrainer, BatchStudent, duration_weeks
from edutrack.models.course import Course, CourseEnrollment, CourseStatus
from edutrack.models.assignment import (
    Assignment, AssignmentResource, Submission, SubmissionDownload,
    ResourceType, SubmissionStatus,
)
from edutrack.models.attendance import Attendance, AttendanceStatus
from edutrack.models.report import Report, ReportStatus, ReportStatusChange, ReportComment

__all__ = [
    "User",
    "UserRole",
    "ADMIN_TIER_ROLES",
    "Student",
    "College",
    "Batch",
    "BatchTrainer",
    "BatchStudent",
    "duration_weeks",
    "Course",
    "CourseEnrollment",
    "CourseStatus",
    "Assignment",
    "AssignmentResource",
    "Submission",
    "SubmissionDownload",
    "ResourceType",
    "SubmissionStatus",
    "Attendance",
    "AttendanceStatus",
    "Report",
    "ReportStatus",
    "ReportStatusChange",
    "ReportComment",
]
