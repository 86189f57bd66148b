# tests/conftest.py
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from dept_scheduler.database import build_engine, init_db
from dept_scheduler.models import (
    AssignmentStatus,
    AssignmentType,
    Department,
    Event,
    EventStatus,
    EventType,
    Participant,
    Project,
    Task,
    TaskAssignment,
    User,
    UserRole,
)
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.permissions import Principal

NOW = datetime(2026, 3, 2, 9, 0)


class RecordingBroadcaster(Broadcaster):
    def __init__(self):
        self.emitted = []
        self.sent = []

    def emit(self, resource, action, resource_id=None, **extra):
        self.emitted.append((resource, action, resource_id, extra))

    def send_to_user(self, user_id, event, payload):
        self.sent.append((user_id, event, payload))


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def departments(db):
    engineering = Department(name="Engineering")
    sales = Department(name="Sales")
    db.add_all([engineering, sales])
    db.commit()
    return {"engineering": engineering, "sales": sales}


@pytest.fixture
def users(db, departments):
    eng = departments["engineering"].id
    sales = departments["sales"].id
    rows = {
        "admin": User(name="Ada Admin", email="admin@acme.com", role=UserRole.ADMIN),
        "manager": User(name="Max Manager", email="max@acme.com", role=UserRole.MANAGER, department_id=eng),
        "sales_manager": User(name="Sam Sales", email="sam@acme.com", role=UserRole.MANAGER, department_id=sales),
        "alice": User(name="Alice", email="alice@acme.com", role=UserRole.EMPLOYEE, department_id=eng),
        "bob": User(name="Bob", email="bob@acme.com", role=UserRole.EMPLOYEE, department_id=eng),
        "carol": User(name="Carol", email="carol@acme.com", role=UserRole.EMPLOYEE, department_id=sales),
    }
    db.add_all(rows.values())
    db.commit()
    return rows


@pytest.fixture
def principals(users):
    return {key: Principal.from_user(user) for key, user in users.items()}


@pytest.fixture
def make_task(db, users):
    def _make(**fields):
        fields.setdefault("title", "Write report")
        fields.setdefault("created_by", users["manager"].id)
        fields.setdefault("department_id", users["manager"].department_id)
        fields.setdefault("assignment_type", AssignmentType.OPEN)
        fields.setdefault("capacity", 1)
        task = Task(**fields)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task
    return _make


@pytest.fixture
def make_assignment(db):
    def _make(task, user, status=AssignmentStatus.ACCEPTED, progress=0):
        assignment = TaskAssignment(task_id=task.id, user_id=user.id, status=status, progress=progress)
        db.add(assignment)
        db.commit()
        db.refresh(assignment)
        return assignment
    return _make


@pytest.fixture
def make_project(db, departments):
    def _make(name="Migration", department_id=None):
        project = Project(name=name, department_id=department_id or departments["engineering"].id)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project
    return _make


@pytest.fixture
def make_trip(db, users):
    """Approved business trip with the given participants"""
    def _make(participants, start=NOW, hours=48, status=EventStatus.APPROVED, title="Client visit"):
        event = Event(
            title=title,
            start_time=start,
            end_time=start + timedelta(hours=hours),
            status=status,
            type=EventType.WORK,
            created_by=users["manager"].id,
            department_id=users["manager"].department_id,
        )
        event.participants = [Participant(user_id=u.id) for u in participants]
        db.add(event)
        db.commit()
        db.refresh(event)
        return event
    return _make
