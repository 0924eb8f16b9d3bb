import os

# The app builds its engine at import time; point it at SQLite before anything imports it.
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"

from datetime import date, time, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from classshift.api.deps import get_db
from classshift.core.security import create_access_token
from classshift.db.base import Base
from classshift.db.session import configure_sqlite_transactions
from classshift.main import app
from classshift.models.branch import Branch
from classshift.models.class_session import ClassSession, SessionStatus
from classshift.models.resource import Resource, ResourceType
from classshift.models.session_resource import SessionResource
from classshift.models.student_session import StudentSession
from classshift.models.teacher import Teacher
from classshift.models.teaching_assignment import AssignmentStatus, TeachingAssignment
from classshift.models.time_slot import TimeSlotTemplate
from classshift.models.training_class import Modality, TrainingClass
from classshift.models.user import User, UserRole


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_transactions(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def build(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return build


def _add_user(db, full_name: str, email: str, role: UserRole) -> User:
    user = User(full_name=full_name, email=email, role=role, is_active=True)
    db.add(user)
    db.flush()
    return user


def _add_teacher(db, full_name: str, email: str, code: str, skills: list[str]) -> Teacher:
    user = _add_user(db, full_name, email, UserRole.teacher)
    teacher = Teacher(user_id=user.id, employee_code=code, skills=skills)
    db.add(teacher)
    db.flush()
    return teacher


def _add_session(
    db,
    *,
    class_id: str,
    session_date: date,
    time_slot_id: str,
    resource_id: str | None,
    teacher_id: str | None,
    student_ids: list[str] | tuple[str, ...] = (),
    status: SessionStatus = SessionStatus.planned,
) -> ClassSession:
    session = ClassSession(
        class_id=class_id,
        time_slot_id=time_slot_id,
        session_date=session_date,
        status=status,
        topic="Unit review",
    )
    db.add(session)
    db.flush()
    if resource_id is not None:
        db.add(
            SessionResource(
                session_id=session.id,
                resource_id=resource_id,
                session_date=session_date,
                time_slot_id=time_slot_id,
                is_active=True,
            )
        )
    if teacher_id is not None:
        db.add(TeachingAssignment(session_id=session.id, teacher_id=teacher_id, status=AssignmentStatus.scheduled))
    for student_id in student_ids:
        db.add(StudentSession(session_id=session.id, student_id=student_id))
    db.flush()
    return session


@pytest.fixture()
def make_session(db_session):
    def build(**kwargs) -> str:
        session = _add_session(db_session, **kwargs)
        db_session.commit()
        return session.id

    return build


@pytest.fixture()
def campus(db_session):
    """Seed one branch with rooms, virtual links, four teachers and two parallel sessions.

    Returns plain ids so tests never touch expired ORM state between requests.
    """
    db = db_session
    today = date.today()

    main = Branch(code="HN", name="Hanoi Campus")
    other = Branch(code="HCM", name="Saigon Campus")
    db.add_all([main, other])
    db.flush()

    morning = TimeSlotTemplate(branch_id=main.id, name="Morning", start_time=time(8, 0), end_time=time(10, 0))
    late = TimeSlotTemplate(branch_id=main.id, name="Late Morning", start_time=time(10, 0), end_time=time(12, 0))
    foreign_slot = TimeSlotTemplate(branch_id=other.id, name="Morning", start_time=time(8, 0), end_time=time(10, 0))
    db.add_all([morning, late, foreign_slot])
    db.flush()

    r1 = Resource(branch_id=main.id, code="R1", name="Room 101", resource_type=ResourceType.room, capacity=30)
    r2 = Resource(branch_id=main.id, code="R2", name="Room 102", resource_type=ResourceType.room, capacity=30)
    tiny = Resource(branch_id=main.id, code="Z3", name="Small Meet", resource_type=ResourceType.virtual, capacity=1)
    z1 = Resource(branch_id=main.id, code="Z1", name="Zoom 1", resource_type=ResourceType.virtual, capacity=None)
    z2 = Resource(branch_id=main.id, code="Z2", name="Zoom 2", resource_type=ResourceType.virtual, capacity=None)
    foreign_room = Resource(
        branch_id=other.id, code="R1", name="Saigon Room", resource_type=ResourceType.room, capacity=30
    )
    db.add_all([r1, r2, tiny, z1, z2, foreign_room])
    db.flush()

    staff = _add_user(db, "Grace Staff", "staff@example.com", UserRole.academic_affairs)
    admin = _add_user(db, "Ada Admin", "admin@example.com", UserRole.admin)
    teacher_a = _add_teacher(db, "Alice Nguyen", "alice@example.com", "T-A", ["ENG"])
    teacher_b = _add_teacher(db, "Bao Tran", "bao@example.com", "T-B", ["ENG"])
    teacher_c = _add_teacher(db, "Chi Le", "chi@example.com", "T-C", [])
    teacher_d = _add_teacher(db, "Dung Pham", "dung@example.com", "T-D", ["IELTS"])
    students = [
        _add_user(db, f"Student {index}", f"student{index}@example.com", UserRole.student) for index in range(1, 5)
    ]

    english = TrainingClass(
        branch_id=main.id, code="ENG-101", name="English Foundations", subject_code="ENG", modality=Modality.offline
    )
    ielts = TrainingClass(
        branch_id=main.id, code="IELTS-201", name="IELTS Prep", subject_code="IELTS", modality=Modality.offline
    )
    db.add_all([english, ielts])
    db.flush()

    session = _add_session(
        db,
        class_id=english.id,
        session_date=today + timedelta(days=1),
        time_slot_id=morning.id,
        resource_id=r1.id,
        teacher_id=teacher_a.id,
        student_ids=[students[0].id, students[1].id],
    )
    parallel = _add_session(
        db,
        class_id=ielts.id,
        session_date=today + timedelta(days=1),
        time_slot_id=morning.id,
        resource_id=r2.id,
        teacher_id=teacher_b.id,
        student_ids=[students[2].id],
    )
    db.commit()

    return SimpleNamespace(
        today=today,
        branch_id=main.id,
        other_branch_id=other.id,
        morning_id=morning.id,
        late_id=late.id,
        foreign_slot_id=foreign_slot.id,
        r1_id=r1.id,
        r2_id=r2.id,
        tiny_id=tiny.id,
        z1_id=z1.id,
        z2_id=z2.id,
        foreign_room_id=foreign_room.id,
        staff_user_id=staff.id,
        admin_user_id=admin.id,
        teacher_a_id=teacher_a.id,
        teacher_a_user_id=teacher_a.user_id,
        teacher_b_id=teacher_b.id,
        teacher_b_user_id=teacher_b.user_id,
        teacher_c_id=teacher_c.id,
        teacher_c_user_id=teacher_c.user_id,
        teacher_d_id=teacher_d.id,
        teacher_d_user_id=teacher_d.user_id,
        student_ids=[item.id for item in students],
        english_id=english.id,
        ielts_id=ielts.id,
        session_id=session.id,
        parallel_session_id=parallel.id,
    )
