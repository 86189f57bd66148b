from datetime import timedelta

import pytest

from dept_scheduler.exceptions import ForbiddenError, NotFoundError
from dept_scheduler.models import AssignmentStatus, Event, EventStatus, Project, Task, TaskStatus
from dept_scheduler.schemas.project import ProjectCreate, ProjectUpdate
from dept_scheduler.services.project_service import ProjectService

from conftest import NOW


@pytest.fixture
def service(db, broadcaster):
    return ProjectService(db, broadcaster)


def test_progress_of_a_project(service, make_project, make_task, make_assignment, users):
    project = make_project()
    a = make_task(title="Schema", project_id=project.id, weight=70, status=TaskStatus.IN_PROGRESS)
    b = make_task(title="Docs", project_id=project.id, status=TaskStatus.COMPLETED)
    make_assignment(a, users["alice"], progress=50)

    summary = service.get_progress(project.id)

    assert summary["tasks_effective_weights"] == {a.id: 70, b.id: 30}
    assert summary["progress"] == 65


def test_rejected_assignments_are_ignored(service, make_project, make_task, make_assignment, users):
    project = make_project()
    task = make_task(project_id=project.id)
    make_assignment(task, users["alice"], progress=40)
    make_assignment(task, users["bob"], status=AssignmentStatus.REJECTED)

    assert service.get_progress(project.id)["progress"] == 40


def test_empty_project_has_no_progress(service, make_project):
    project = make_project()
    assert service.get_progress(project.id) == {
        "id": project.id,
        "name": "Migration",
        "description": None,
        "department_id": project.department_id,
        "created_at": project.created_at,
        "updated_at": None,
        "progress": 0,
        "tasks_effective_weights": {},
    }


def test_missing_project(service):
    with pytest.raises(NotFoundError):
        service.get_progress(42)


def test_manager_department_is_forced(service, principals, departments):
    project = service.create_project(
        ProjectCreate(name="Pipeline", department_id=departments["sales"].id),
        principals["manager"],
    )
    assert project.department_id == departments["engineering"].id


def test_admin_picks_department(service, principals, departments):
    project = service.create_project(
        ProjectCreate(name="Pipeline", department_id=departments["sales"].id),
        principals["admin"],
    )
    assert project.department_id == departments["sales"].id


def test_employees_cannot_create(service, principals):
    with pytest.raises(ForbiddenError):
        service.create_project(ProjectCreate(name="Side quest"), principals["alice"])


def test_create_with_calendar_event(db, service, principals, broadcaster):
    payload = ProjectCreate(
        name="Launch",
        create_event=True,
        event_start=NOW,
        event_end=NOW + timedelta(days=14),
    )
    project = service.create_project(payload, principals["manager"])

    event = db.query(Event).one()
    assert event.title == "[Project] Launch"
    assert event.status == EventStatus.APPROVED
    assert event.department_id == project.department_id
    assert ("projects", "create", project.id, {}) in broadcaster.emitted


def test_incomplete_event_window_creates_no_event(db, service, principals):
    service.create_project(ProjectCreate(name="Launch", create_event=True, event_start=NOW), principals["manager"])
    assert db.query(Event).count() == 0


def test_list_is_scoped_for_managers(service, principals, make_project, departments):
    make_project(name="Eng roadmap")
    make_project(name="Sales plan", department_id=departments["sales"].id)

    assert [p["name"] for p in service.list_projects(principals["sales_manager"])] == ["Sales plan"]
    assert {p["name"] for p in service.list_projects(principals["admin"])} == {"Eng roadmap", "Sales plan"}


def test_update_and_delete_require_department_manager(db, service, principals, make_project, make_task):
    project = make_project()
    make_task(project_id=project.id)

    with pytest.raises(ForbiddenError):
        service.update_project(project.id, ProjectUpdate(name="Hijacked"), principals["sales_manager"])

    updated = service.update_project(project.id, ProjectUpdate(name="Migration v2"), principals["manager"])
    assert updated.name == "Migration v2"

    service.delete_project(project.id, principals["manager"])
    assert db.query(Project).count() == 0
    assert db.query(Task).count() == 0
