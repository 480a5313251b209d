"""
Faculty views: college overview, one student's performance and
department performance.
"""
from collections import Counter, defaultdict
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import run_bounded
from edutrack.core.exceptions import ValidationError
from edutrack.models import (
    Assignment, Attendance, AttendanceStatus, College, Report, ReportStatus, Student, Submission, SubmissionStatus,
    User, UserRole,
)
from edutrack.modules.auth import Principal, require_roles
from edutrack.modules.auth.scope import authorize_department, load_student
from edutrack.services.attendance import attendance_summary, serialize_attendance
from edutrack.services.report_workflow import report_summary
from edutrack.services.stats import mean, percentage

RECENT_REPORTS = 5
RECENT_SUBMISSIONS = 5
RECENT_ATTENDANCE = 10


def report_histogram(reports) -> Dict[str, int]:
    counts = {status.value: 0 for status in ReportStatus}
    for report in reports:
        counts[report.status.value] += 1
    return counts


def submission_stats(rows) -> Dict[str, Any]:
    """Submission/grade statistics over (Submission, Assignment) pairs"""
    graded = [(s, a) for s, a in rows if s.status == SubmissionStatus.GRADED and s.grade is not None]
    return {
        "totalSubmissions": len(rows),
        "graded": len(graded),
        "late": sum(1 for s, _ in rows if s.status == SubmissionStatus.LATE),
        "pending": sum(1 for s, _ in rows if s.status != SubmissionStatus.GRADED),
        "averageGrade": mean((s.grade for s, _ in graded), 2),
        "averageScorePercentage": mean(
            (s.grade / a.total_points * 100 for s, a in graded if a.total_points), 2
        ),
    }


# =====================================================
# COLLEGE OVERVIEW
# =====================================================

async def _college_overview(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    conditions = [Student.assigned_faculty_id == principal.id]
    if principal.college:
        conditions.append(Student.college == principal.college)
    students = (await db.scalars(select(Student).where(or_(*conditions)))).all()
    user_ids = [s.user_id for s in students]
    profile_ids = [s.id for s in students]

    departments = Counter(s.department or "Unassigned" for s in students)

    statuses = []
    recent_reports = []
    if students:
        statuses = (await db.scalars(
            select(Attendance.status).where(Attendance.student_id.in_(user_ids))
        )).all()
        recent_reports = (await db.scalars(
            select(Report)
            .where(Report.student_id.in_(profile_ids))
            .order_by(Report.submission_date.desc())
            .limit(RECENT_REPORTS)
        )).all()

    summary = attendance_summary(statuses)
    return {
        "college": principal.college,
        "totalStudents": len(students),
        "assignedStudents": sum(1 for s in students if s.assigned_faculty_id == principal.id),
        "departments": dict(departments),
        "attendance": summary,
        "attendancePercentage": summary["percentage"],
        "recentReports": [report_summary(r) for r in recent_reports],
    }


async def college_overview(db: AsyncSession, principal: Principal) -> Dict[str, Any]:
    """Students, attendance and recent reports across the faculty member's college"""
    require_roles(principal, UserRole.FACULTY)
    return await run_bounded(_college_overview(db, principal), "faculty_college_overview")


# =====================================================
# STUDENT PERFORMANCE
# =====================================================

async def _student_performance(db: AsyncSession, user: User, profile: Student) -> Dict[str, Any]:
    records = (await db.scalars(
        select(Attendance).where(Attendance.student_id == user.id).order_by(Attendance.date.desc())
    )).all()
    submissions = (await db.execute(
        select(Submission, Assignment)
        .join(Assignment, Assignment.id == Submission.assignment_id)
        .where(Submission.student_id == user.id)
        .order_by(Submission.submitted_at.desc())
    )).all()
    reports = (await db.scalars(
        select(Report)
        .where(Report.student_id == profile.id)
        .order_by(Report.submission_date.desc())
        .limit(RECENT_REPORTS)
    )).all()

    summary = attendance_summary(r.status for r in records)
    stats = submission_stats(submissions)
    return {
        "student": {
            "id": user.id,
            "name": user.full_name,
            "rollNumber": profile.roll_number,
            "department": profile.department,
            "semester": profile.semester,
        },
        "attendance": {
            "summary": summary,
            "percentage": summary["percentage"],
            "recent": [serialize_attendance(r) for r in records[:RECENT_ATTENDANCE]],
        },
        "submissions": {
            "recent": [
                {
                    "id": s.id,
                    "assignmentId": a.id,
                    "assignmentTitle": a.title,
                    "totalPoints": a.total_points,
                    "submittedAt": s.submitted_at,
                    "status": s.status.value,
                    "grade": s.grade,
                }
                for s, a in submissions[:RECENT_SUBMISSIONS]
            ],
            "averageGrade": stats["averageGrade"],
            "total": stats["totalSubmissions"],
        },
        "recentReports": [report_summary(r) for r in reports],
    }


async def student_performance(db: AsyncSession, principal: Principal, student_id: str) -> Dict[str, Any]:
    """Attendance, submissions and reports for one student in scope"""
    user, profile = await load_student(db, principal, student_id)
    return await run_bounded(_student_performance(db, user, profile), "student_performance")


# =====================================================
# DEPARTMENT PERFORMANCE
# =====================================================

def _bounds(start: Optional[date], end: Optional[date]):
    start_at = datetime.combine(start, time.min) if start else None
    end_at = datetime.combine(end, time.max) if end else None
    return start_at, end_at


async def _department_performance(db: AsyncSession, college: str, department: Optional[str],
                                  start: Optional[date], end: Optional[date]) -> Dict[str, Any]:
    start_at, end_at = _bounds(start, end)

    query = select(Student).where(Student.college == college)
    if department:
        query = query.where(Student.department == department)
    students = (await db.scalars(query)).all()
    by_user = {s.user_id: s for s in students}
    user_ids = list(by_user)
    profile_ids = [s.id for s in students]

    attendance: List[Attendance] = []
    submissions: List = []
    reports: List[Report] = []
    users: Dict[str, User] = {}
    if students:
        q = select(Attendance).where(Attendance.student_id.in_(user_ids))
        if start:
            q = q.where(Attendance.date >= start)
        if end:
            q = q.where(Attendance.date <= end)
        attendance = list((await db.scalars(q)).all())

        q = (
            select(Submission, Assignment)
            .join(Assignment, Assignment.id == Submission.assignment_id)
            .where(Submission.student_id.in_(user_ids))
        )
        if start_at:
            q = q.where(Submission.submitted_at >= start_at)
        if end_at:
            q = q.where(Submission.submitted_at <= end_at)
        submissions = list((await db.execute(q)).all())

        q = select(Report).where(Report.student_id.in_(profile_ids))
        if start_at:
            q = q.where(Report.submission_date >= start_at)
        if end_at:
            q = q.where(Report.submission_date <= end_at)
        reports = list((await db.scalars(q)).all())

        users = {u.id: u for u in (await db.scalars(select(User).where(User.id.in_(user_ids)))).all()}

    per_student_records = defaultdict(list)
    for record in attendance:
        per_student_records[record.student_id].append(record.status)

    student_rows = []
    for user_id, profile in by_user.items():
        statuses = per_student_records.get(user_id, [])
        present = sum(1 for s in statuses if s == AttendanceStatus.PRESENT)
        user = users.get(user_id)
        student_rows.append({
            "id": user_id,
            "name": user.full_name if user else None,
            "rollNumber": profile.roll_number,
            "semester": profile.semester,
            "totalDays": len(statuses),
            "attendancePercentage": percentage(present, len(statuses)),
        })
    student_rows.sort(key=lambda s: s["attendancePercentage"], reverse=True)

    summary = attendance_summary(r.status for r in attendance)
    result = {
        "college": college,
        "department": department,
        "dateRange": {"start": start, "end": end},
        "totalStudents": len(students),
        "attendance": summary,
        "attendancePercentage": summary["percentage"],
        "students": student_rows,
        "assignments": submission_stats(submissions),
        "reports": report_histogram(reports),
    }

    flag = await db.scalar(select(College.semester_breakdown_enabled).where(College.name == college))
    if flag:
        result["semesters"] = _semester_breakdown(students, attendance, reports)
    return result


def _semester_breakdown(students, attendance, reports) -> List[Dict[str, Any]]:
    semester_of_user = {s.user_id: s.semester for s in students}
    semester_of_profile = {s.id: s.semester for s in students}
    buckets: Dict[Optional[int], Dict[str, Any]] = {}

    def bucket(semester):
        return buckets.setdefault(semester, {"students": 0, "statuses": [], "reports": []})

    for s in students:
        bucket(s.semester)["students"] += 1
    for record in attendance:
        bucket(semester_of_user.get(record.student_id))["statuses"].append(record.status)
    for report in reports:
        bucket(semester_of_profile.get(report.student_id))["reports"].append(report)

    rows = []
    for semester in sorted(buckets, key=lambda k: (k is None, k or 0)):
        data = buckets[semester]
        summary = attendance_summary(data["statuses"])
        rows.append({
            "semester": semester,
            "totalStudents": data["students"],
            "attendance": summary,
            "attendancePercentage": summary["percentage"],
            "reports": report_histogram(data["reports"]),
        })
    return rows


async def department_performance(db: AsyncSession, principal: Principal, college: Optional[str] = None,
                                 department: Optional[str] = None, start: Optional[date] = None,
                                 end: Optional[date] = None) -> Dict[str, Any]:
    """Attendance, assignment and report statistics for a college or one of its departments"""
    college = college or principal.college
    if not college:
        raise ValidationError("College is required", field="college")
    if start and end and end < start:
        raise ValidationError("End date must not be before start date", field="endDate")
    authorize_department(principal, college)
    return await run_bounded(
        _department_performance(db, college, department, start, end), "department_performance"
    )
