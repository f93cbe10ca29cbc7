import itertools
import os
from datetime import date, datetime, timezone

# Settings are cached on first import, so the test environment has to be in place before the app loads.
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
os.environ["AUTO_CREATE_SCHEMA"] = "true"
os.environ["ESCALATION_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from subcover.api.deps import get_clock, get_db  # noqa: E402
from subcover.core.config import Settings  # noqa: E402
from subcover.core.security import create_access_token  # noqa: E402
from subcover.db.base import Base  # noqa: E402
from subcover.main import app  # noqa: E402
from subcover.models.lecture import Lecture, LectureStatus  # noqa: E402
from subcover.models.teacher import Teacher, TeacherRole  # noqa: E402


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def settings():
    return Settings(escalation_enabled=False)


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 2, 10, 10, 0, tzinfo=timezone.utc))


@pytest.fixture()
def client(session_factory, clock):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def make_teacher(db_session):
    counter = itertools.count(1)

    def _make(
        name: str,
        *,
        department: str = "CS",
        role: TeacherRole = TeacherRole.teacher,
        is_active: bool = True,
        substitute_count: int = 0,
    ) -> Teacher:
        slug = name.lower().replace(" ", ".")
        teacher = Teacher(
            name=name,
            email=f"{slug}.{next(counter)}@example.com",
            department=department,
            role=role,
            is_active=is_active,
            substitute_count=substitute_count,
        )
        db_session.add(teacher)
        db_session.commit()
        db_session.refresh(teacher)
        return teacher

    return _make


@pytest.fixture()
def make_lecture(db_session):
    def _make(
        teacher: Teacher,
        *,
        on_date: date = date(2026, 2, 10),
        start_time: str = "09:00",
        end_time: str = "10:00",
        room: str | None = None,
        subject: str = "Algorithms",
        class_year: str = "SE",
        status: LectureStatus = LectureStatus.scheduled,
        substitute: Teacher | None = None,
    ) -> Lecture:
        lecture = Lecture(
            scheduled_teacher_id=teacher.id,
            substitute_teacher_id=substitute.id if substitute is not None else None,
            department=teacher.department,
            subject=subject,
            class_year=class_year,
            room=room,
            date=on_date,
            day_of_week=on_date.strftime("%A"),
            start_time=start_time,
            end_time=end_time,
            status=status,
        )
        db_session.add(lecture)
        db_session.commit()
        db_session.refresh(lecture)
        return lecture

    return _make


@pytest.fixture()
def auth_headers():
    def _headers(teacher: Teacher) -> dict[str, str]:
        token = create_access_token(
            subject=teacher.id,
            role=teacher.role.value,
            department=teacher.department,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
