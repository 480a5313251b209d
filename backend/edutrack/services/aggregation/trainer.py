"""
Trainer views: dashboard, assigned batches, course assignments and
assignment submissions.
"""
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import run_bounded
from edutrack.models import (
    Assignment, Batch, Course, CourseEnrollment, Submission, SubmissionStatus, User, UserRole,
)
from edutrack.modules.auth import Principal, require_roles
from edutrack.modules.auth.scope import load_batch
from edutrack.services.batches import batch_counts, serialize_batch, serialize_course

PREVIEW_STUDENTS = 5
UPCOMING_ASSIGNMENTS = 5
RECENT_SUBMISSIONS = 10


async def _users_by_id(db: AsyncSession, ids) -> Dict[str, User]:
    ids = set(ids)
    if not ids:
        return {}
    return {u.id: u for u in (await db.scalars(select(User).where(User.id.in_(ids)))).all()}


async def _trainer_dashboard(db: AsyncSession, principal: Principal,
                             batch_id: Optional[str]) -> Dict[str, Any]:
    query = select(Course).where(Course.id.in_(principal.course_ids or [""]))
    if batch_id:
        query = query.where(Course.batch_id == batch_id)
    courses = (await db.scalars(query.order_by(Course.title))).all()
    course_ids = [c.id for c in courses]
    courses_by_id = {c.id: c for c in courses}

    batch_ids = {c.batch_id for c in courses if c.batch_id}
    batches = {}
    if batch_ids:
        batches = {b.id: b for b in (await db.scalars(select(Batch).where(Batch.id.in_(batch_ids)))).all()}

    enrollments: List[CourseEnrollment] = []
    upcoming: List[Assignment] = []
    recent: List = []
    pending = 0
    if course_ids:
        enrollments = list((await db.scalars(
            select(CourseEnrollment)
            .where(CourseEnrollment.course_id.in_(course_ids))
            .order_by(CourseEnrollment.enrolled_at)
        )).all())
        upcoming = list((await db.scalars(
            select(Assignment)
            .where(Assignment.course_id.in_(course_ids), Assignment.due_date >= datetime.utcnow())
            .order_by(Assignment.due_date)
            .limit(UPCOMING_ASSIGNMENTS)
        )).all())
        recent = (await db.execute(
            select(Submission, Assignment)
            .join(Assignment, Assignment.id == Submission.assignment_id)
            .where(Assignment.course_id.in_(course_ids))
            .order_by(Submission.submitted_at.desc())
            .limit(RECENT_SUBMISSIONS)
        )).all()
        pending = await db.scalar(
            select(func.count(Submission.id))
            .join(Assignment, Assignment.id == Submission.assignment_id)
            .where(Assignment.course_id.in_(course_ids), Submission.status != SubmissionStatus.GRADED)
        ) or 0

    by_course = defaultdict(list)
    for enrollment in enrollments:
        by_course[enrollment.course_id].append(enrollment)
    users = await _users_by_id(
        db,
        [e.student_id for c in course_ids for e in by_course[c][:PREVIEW_STUDENTS]]
        + [submission.student_id for submission, _ in recent],
    )

    def context(course_id: str) -> Dict[str, Any]:
        course = courses_by_id.get(course_id)
        batch = batches.get(course.batch_id) if course else None
        return {
            "courseId": course_id,
            "courseTitle": course.title if course else None,
            "batchId": batch.id if batch else None,
            "batchName": batch.name if batch else None,
        }

    course_rows = []
    for course in courses:
        data = serialize_course(course)
        data.update(context(course.id))
        data["studentCount"] = len(by_course[course.id])
        data["students"] = [
            {
                "id": e.student_id,
                "name": users[e.student_id].full_name if e.student_id in users else None,
                "progress": e.progress,
            }
            for e in by_course[course.id][:PREVIEW_STUDENTS]
        ]
        course_rows.append(data)

    submission_rows = []
    for submission, assignment in recent:
        student = users.get(submission.student_id)
        row = {
            "id": submission.id,
            "assignmentId": assignment.id,
            "assignmentTitle": assignment.title,
            "totalPoints": assignment.total_points,
            "submittedAt": submission.submitted_at,
            "status": submission.status.value,
            "grade": submission.grade,
            "student": {
                "id": submission.student_id,
                "name": student.full_name if student else None,
                "email": student.email if student else None,
            },
        }
        row.update(context(assignment.course_id))
        submission_rows.append(row)

    return {
        "stats": {
            "totalCourses": len(courses),
            "totalBatches": len(batch_ids),
            "totalStudents": len({e.student_id for e in enrollments}),
            "pendingGrading": pending,
        },
        "courses": course_rows,
        "upcomingAssignments": [
            {
                "id": a.id,
                "title": a.title,
                "dueDate": a.due_date,
                "totalPoints": a.total_points,
                **context(a.course_id),
            }
            for a in upcoming
        ],
        "recentSubmissions": submission_rows,
    }


async def trainer_dashboard(db: AsyncSession, principal: Principal,
                            batch_id: Optional[str] = None) -> Dict[str, Any]:
    """Courses, upcoming deadlines and recent submissions for a trainer"""
    require_roles(principal, UserRole.TRAINER)
    if batch_id:
        # Raises unless the trainer is assigned to the batch
        await load_batch(db, principal, batch_id)
    return await run_bounded(_trainer_dashboard(db, principal, batch_id), "trainer_dashboard")


async def _trainer_batches(db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
    if not principal.batch_ids:
        return []
    batches = (await db.scalars(
        select(Batch).where(Batch.id.in_(principal.batch_ids)).order_by(Batch.start_date.desc())
    )).all()
    counts = await batch_counts(db, [b.id for b in batches])
    return [serialize_batch(b, counts[b.id]) for b in batches]


async def trainer_batches(db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
    require_roles(principal, UserRole.TRAINER)
    return await run_bounded(_trainer_batches(db, principal), "trainer_batches")
