"""
EduTrack - Test Configuration and Fixtures
"""
import os
import tempfile
from datetime import datetime
from typing import AsyncGenerator, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['DEBUG'] = 'false'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['UPLOAD_PATH'] = tempfile.mkdtemp(prefix='edutrack-test-')

from edutrack.main import app
from edutrack.core.database import Base, get_db
from edutrack.core.security import get_password_hash, create_access_token
from edutrack.core.types import generate_uuid
from edutrack.models import (
    User, UserRole, Student, Batch, BatchStudent, BatchTrainer, Course, CourseEnrollment,
)
from edutrack.modules.auth import Principal, resolve_principal

fake = Faker()

TEST_PASSWORD = 'Secret#123'

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================
# Record builders
# ============================================

async def make_user(db: AsyncSession, role: UserRole, college: Optional[str] = 'Engineering College',
                    is_active: bool = True, username: Optional[str] = None) -> User:
    user = User(
        id=generate_uuid(),
        email=fake.unique.email().lower(),
        username=username or fake.unique.user_name()[:40],
        first_name=fake.first_name(),
        last_name=fake.last_name(),
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role,
        is_active=is_active,
        college=college,
    )
    db.add(user)
    await db.commit()
    return user


async def make_batch(db: AsyncSession, code: Optional[str] = None, trainers=(), max_students: int = 30,
                     start: datetime = datetime(2024, 1, 1), end: datetime = datetime(2024, 6, 1)) -> Batch:
    batch = Batch(
        id=generate_uuid(),
        name=fake.catch_phrase()[:60],
        code=code or fake.unique.bothify('B-####').upper(),
        start_date=start,
        end_date=end,
        max_students=max_students,
        tags=[],
    )
    db.add(batch)
    for trainer in trainers:
        db.add(BatchTrainer(batch_id=batch.id, trainer_id=trainer.id))
    await db.commit()
    return batch


async def make_student(db: AsyncSession, batch: Optional[Batch] = None, college: str = 'Engineering College',
                       department: str = 'CSE', semester: int = 3,
                       assigned_faculty: Optional[User] = None) -> User:
    """Student account with its profile and batch membership"""
    user = await make_user(db, UserRole.STUDENT, college=college)
    db.add(Student(
        id=generate_uuid(),
        user_id=user.id,
        roll_number=fake.unique.bothify('R####??').upper(),
        department=department,
        semester=semester,
        academic_year='2024-2025',
        college=college,
        batch_id=batch.id if batch else None,
        assigned_faculty_id=assigned_faculty.id if assigned_faculty else None,
    ))
    if batch:
        db.add(BatchStudent(batch_id=batch.id, student_id=user.id))
    await db.commit()
    return user


async def make_course(db: AsyncSession, batch: Batch, instructor: Optional[User] = None,
                      students=(), title: Optional[str] = None) -> Course:
    course = Course(
        id=generate_uuid(),
        title=title or fake.bs().title()[:60],
        batch_id=batch.id,
        instructor_id=instructor.id if instructor else None,
    )
    db.add(course)
    for student in students:
        db.add(CourseEnrollment(course_id=course.id, student_id=student.id, progress=0))
    await db.commit()
    return course


async def principal_for(db: AsyncSession, user: User) -> Principal:
    return await resolve_principal(db, user)


def headers_for(user: User) -> dict:
    """Generate authentication headers for a user"""
    token_data = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role.value
    }
    token = create_access_token(token_data)
    return {'Authorization': f'Bearer {token}'}


# ============================================
# Fixtures
# ============================================

@pytest.fixture
async def superadmin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.SUPERADMIN, college=None)


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.ADMIN)


@pytest.fixture
async def trainer_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.TRAINER)


@pytest.fixture
async def faculty_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.FACULTY)


@pytest.fixture
async def batch(db_session: AsyncSession, trainer_user: User) -> Batch:
    """Batch taught by ``trainer_user``"""
    return await make_batch(db_session, trainers=[trainer_user])


@pytest.fixture
async def student_user(db_session: AsyncSession, batch: Batch) -> User:
    return await make_student(db_session, batch)


@pytest.fixture
async def course(db_session: AsyncSession, batch: Batch, trainer_user: User, student_user: User) -> Course:
    return await make_course(db_session, batch, instructor=trainer_user, students=[student_user])


@pytest.fixture
def admin_auth_headers(admin_user: User) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def superadmin_auth_headers(superadmin_user: User) -> dict:
    return headers_for(superadmin_user)


@pytest.fixture
def trainer_auth_headers(trainer_user: User) -> dict:
    return headers_for(trainer_user)


@pytest.fixture
def faculty_auth_headers(faculty_user: User) -> dict:
    return headers_for(faculty_user)


@pytest.fixture
def student_auth_headers(student_user: User) -> dict:
    return headers_for(student_user)
