"""
Batch overview: per-course and per-student progress within one batch.
"""
from collections import defaultdict
from typing import Any, Dict, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.database import run_bounded
from edutrack.models import Assignment, Batch, BatchStudent, Course, CourseEnrollment, User, Student
from edutrack.modules.auth import Principal
from edutrack.modules.auth.scope import load_batch
from edutrack.services.batches import serialize_batch
from edutrack.services.stats import mean, percentage

COMPLETE = 100


def student_progress(enrollments: List[CourseEnrollment]) -> Dict[str, Any]:
    """Completion figures for one student; no enrollments counts as 0"""
    progresses = [e.progress or 0 for e in enrollments]
    accessed = [e.last_accessed for e in enrollments if e.last_accessed]
    return {
        "completedCourses": sum(1 for p in progresses if p >= COMPLETE),
        "totalCourses": len(progresses),
        "averageProgress": mean(progresses, 2),
        "lastAccessed": max(accessed) if accessed else None,
    }


async def _batch_overview(db: AsyncSession, batch: Batch) -> Dict[str, Any]:
    courses = (await db.scalars(
        select(Course).where(Course.batch_id == batch.id).order_by(Course.title)
    )).all()
    course_ids = [c.id for c in courses]

    enrollments: List[CourseEnrollment] = []
    assignment_counts: Dict[str, int] = {}
    if course_ids:
        enrollments = list((await db.scalars(
            select(CourseEnrollment).where(CourseEnrollment.course_id.in_(course_ids))
        )).all())
        rows = await db.execute(
            select(Assignment.course_id, func.count(Assignment.id))
            .where(Assignment.course_id.in_(course_ids))
            .group_by(Assignment.course_id)
        )
        assignment_counts = dict(rows.all())

    by_course = defaultdict(list)
    by_student = defaultdict(list)
    for enrollment in enrollments:
        by_course[enrollment.course_id].append(enrollment)
        by_student[enrollment.student_id].append(enrollment)

    course_rows = [
        {
            "id": course.id,
            "title": course.title,
            "status": course.status.value,
            "instructorId": course.instructor_id,
            "studentCount": len(by_course[course.id]),
            "assignmentCount": assignment_counts.get(course.id, 0),
            "averageProgress": mean((e.progress or 0 for e in by_course[course.id]), 2),
        }
        for course in courses
    ]

    member_ids = list((await db.scalars(
        select(BatchStudent.student_id).where(BatchStudent.batch_id == batch.id)
    )).all())
    users = {}
    roll_numbers = {}
    if member_ids:
        users = {u.id: u for u in (await db.scalars(select(User).where(User.id.in_(member_ids)))).all()}
        rows = await db.execute(
            select(Student.user_id, Student.roll_number).where(Student.user_id.in_(member_ids))
        )
        roll_numbers = dict(rows.all())

    student_rows = []
    for student_id in member_ids:
        user = users.get(student_id)
        row = {
            "id": student_id,
            "name": user.full_name if user else None,
            "email": user.email if user else None,
            "rollNumber": roll_numbers.get(student_id),
        }
        row.update(student_progress(by_student.get(student_id, [])))
        student_rows.append(row)
    student_rows.sort(key=lambda s: s["averageProgress"], reverse=True)

    completed = sum(1 for s in student_rows if s["averageProgress"] >= COMPLETE)
    return {
        "batch": serialize_batch(batch),
        "summary": {
            "totalStudents": len(student_rows),
            "totalCourses": len(courses),
            "averageProgress": mean((s["averageProgress"] for s in student_rows), 2),
            "completionRate": percentage(completed, len(student_rows)),
        },
        "courses": course_rows,
        "students": student_rows,
    }


async def batch_overview(db: AsyncSession, principal: Principal, batch_id: str) -> Dict[str, Any]:
    batch = await load_batch(db, principal, batch_id)
    return await run_bounded(_batch_overview(db, batch), "batch_overview")
