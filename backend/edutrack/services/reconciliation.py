"""
Student projection reconciliation.

A student exists in three places: the ``users`` row, the ``students``
profile and a ``batch_students`` membership. Workflows write them together;
this pass reports every place where they disagree.
"""
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edutrack.core.logging_config import logger
from edutrack.models import User, UserRole, Student, Batch, BatchStudent


@dataclass(frozen=True)
class Drift:
    kind: str
    user_id: Optional[str]
    detail: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


async def verify_student_projections(db: AsyncSession) -> List[Drift]:
    users = {
        row.id: row.role
        for row in (await db.execute(select(User.id, User.role))).all()
    }
    profiles = (await db.execute(select(Student.id, Student.user_id, Student.batch_id))).all()
    memberships = (await db.execute(select(BatchStudent.batch_id, BatchStudent.student_id))).all()
    batch_ids = set((await db.scalars(select(Batch.id))).all())

    drifts: List[Drift] = []
    profile_by_user = {p.user_id: p for p in profiles}
    members_by_user: Dict[str, set] = {}
    for m in memberships:
        members_by_user.setdefault(m.student_id, set()).add(m.batch_id)

    for user_id, role in users.items():
        if role == UserRole.STUDENT and user_id not in profile_by_user:
            drifts.append(Drift("missing_profile", user_id, "student user has no profile"))

    for profile in profiles:
        role = users.get(profile.user_id)
        if role is None:
            drifts.append(Drift("orphan_profile", profile.user_id, f"profile {profile.id} has no user"))
            continue
        if role != UserRole.STUDENT:
            drifts.append(Drift("orphan_profile", profile.user_id, f"profile {profile.id} belongs to a {role.value}"))
        if profile.batch_id:
            if profile.batch_id not in batch_ids:
                drifts.append(Drift("dangling_batch", profile.user_id, f"batch {profile.batch_id} does not exist"))
            if profile.batch_id not in members_by_user.get(profile.user_id, set()):
                drifts.append(Drift("membership_missing", profile.user_id,
                                    f"not a member of profile batch {profile.batch_id}"))

    for student_id, member_of in members_by_user.items():
        if student_id not in users:
            drifts.append(Drift("dangling_member", student_id, "batch member has no user"))
            continue
        profile = profile_by_user.get(student_id)
        expected = {profile.batch_id} if profile and profile.batch_id else set()
        extra = member_of - expected
        if extra:
            drifts.append(Drift("membership_mismatch", student_id,
                                f"member of {sorted(extra)} but profile batch is {profile.batch_id if profile else None}"))

    if drifts:
        logger.warning(
            f"Student projection drift detected: {len(drifts)} issue(s)",
            extra={"event_type": "reconciliation", "drift_count": len(drifts)},
        )
    return drifts
