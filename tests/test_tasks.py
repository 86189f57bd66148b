from datetime import timedelta

import pytest

from dept_scheduler.exceptions import ConflictError, EditWindowClosed, ForbiddenError, NotFoundError, ValidationError
from dept_scheduler.models import Label, Notification, Task, TaskStatus
from dept_scheduler.schemas.task import TaskCreate, TaskUpdate
from dept_scheduler.services.task_service import TaskService
from dept_scheduler.utils.permissions import can_edit_before_window

from conftest import NOW


@pytest.fixture
def service(db, broadcaster):
    return TaskService(db, broadcaster)


def test_create_task_defaults(service, principals, users, broadcaster):
    task = service.create_task(TaskCreate(title="Draft budget"), principals["manager"])

    assert task.status == TaskStatus.TODO
    assert task.capacity == 1
    assert task.weight is None
    assert task.created_by == users["manager"].id
    assert task.department_id == users["manager"].department_id
    assert ("tasks", "create", task.id, {}) in broadcaster.emitted


def test_manager_cannot_create_for_other_department(service, principals, departments):
    payload = TaskCreate(title="Cold calls", department_id=departments["sales"].id)
    with pytest.raises(ForbiddenError):
        service.create_task(payload, principals["manager"])


def test_capacity_must_be_positive(service, principals):
    with pytest.raises(ValidationError):
        service.create_task(TaskCreate(title="Nobody", capacity=0), principals["manager"])


def test_weight_is_rounded_and_validated(service, principals, make_project):
    project = make_project()
    task = service.create_task(TaskCreate(title="A", project_id=project.id, weight=12.5), principals["manager"])
    assert task.weight == 13

    with pytest.raises(ValidationError):
        service.create_task(TaskCreate(title="B", project_id=project.id, weight=140), principals["manager"])


def test_weight_budget_on_create(db, service, principals, make_project):
    project = make_project()
    service.create_task(TaskCreate(title="A", project_id=project.id, weight=60), principals["manager"])
    service.create_task(TaskCreate(title="B", project_id=project.id), principals["manager"])

    with pytest.raises(ConflictError) as exc_info:
        service.create_task(TaskCreate(title="C", project_id=project.id, weight=50), principals["manager"])
    assert exc_info.value.details["remaining"] == 40
    assert db.query(Task).filter(Task.project_id == project.id).count() == 2


def test_weight_budget_on_update_excludes_self(service, principals, make_project):
    project = make_project()
    a = service.create_task(TaskCreate(title="A", project_id=project.id, weight=60), principals["manager"])
    service.create_task(TaskCreate(title="B", project_id=project.id, weight=30), principals["manager"])

    updated = service.update_task(a.id, TaskUpdate(weight=70), principals["manager"], now=NOW)
    assert updated.weight == 70

    with pytest.raises(ConflictError):
        service.update_task(a.id, TaskUpdate(weight=71), principals["manager"], now=NOW)


def test_explicit_null_weight_switches_back_to_auto(service, principals, make_project):
    project = make_project()
    task = service.create_task(TaskCreate(title="A", project_id=project.id, weight=60), principals["manager"])
    updated = service.update_task(task.id, TaskUpdate(weight=None), principals["manager"], now=NOW)
    assert updated.weight is None


def test_unknown_label(service, principals):
    with pytest.raises(NotFoundError):
        service.create_task(TaskCreate(title="Tagged", label_ids=[99]), principals["manager"])


def test_labels_are_attached_and_replaced(db, service, principals):
    urgent, infra = Label(name="urgent"), Label(name="infra", color="#000000")
    db.add_all([urgent, infra])
    db.commit()

    task = service.create_task(TaskCreate(title="Tagged", label_ids=[urgent.id]), principals["manager"])
    assert [label.name for label in task.labels] == ["urgent"]
    assert task.labels[0].color == "#2D9CDB"

    task = service.update_task(task.id, TaskUpdate(label_ids=[infra.id]), principals["manager"], now=NOW)
    assert [label.name for label in task.labels] == ["infra"]


def test_manager_edit_window(service, make_task, principals):
    task = make_task(start_time=NOW, end_time=NOW + timedelta(hours=8))

    edited = service.update_task(task.id, TaskUpdate(title="Renamed"), principals["manager"], now=NOW - timedelta(seconds=1))
    assert edited.title == "Renamed"

    with pytest.raises(EditWindowClosed) as exc_info:
        service.update_task(task.id, TaskUpdate(title="Too late"), principals["manager"], now=NOW)
    assert exc_info.value.status_code == 403

    with pytest.raises(EditWindowClosed):
        service.delete_task(task.id, principals["manager"], now=NOW + timedelta(hours=1))


def test_edit_window_falls_back_to_end_time(make_task, principals):
    task = make_task(end_time=NOW)
    assert can_edit_before_window(principals["manager"], task, NOW - timedelta(seconds=1))
    assert not can_edit_before_window(principals["manager"], task, NOW)


def test_untimed_task_is_always_editable(make_task, principals):
    task = make_task()
    assert can_edit_before_window(principals["manager"], task, NOW + timedelta(days=365))


def test_admin_and_owner_ignore_edit_window(service, make_task, principals, users):
    task = make_task(start_time=NOW, created_by=users["alice"].id)
    assert service.update_task(task.id, TaskUpdate(title="By admin"), principals["admin"], now=NOW).title == "By admin"
    assert service.update_task(task.id, TaskUpdate(title="By owner"), principals["alice"], now=NOW).title == "By owner"


def test_other_users_cannot_edit(service, make_task, principals):
    task = make_task()
    with pytest.raises(ForbiddenError):
        service.update_task(task.id, TaskUpdate(title="Nope"), principals["bob"], now=NOW)
    with pytest.raises(ForbiddenError):
        service.update_task(task.id, TaskUpdate(title="Nope"), principals["sales_manager"], now=NOW)


def test_update_rejects_inverted_window(service, make_task, principals):
    task = make_task(start_time=NOW + timedelta(days=1))
    with pytest.raises(ValidationError):
        service.update_task(task.id, TaskUpdate(end_time=NOW), principals["admin"], now=NOW)


def test_update_and_delete_notify_assignees(db, service, make_task, make_assignment, principals, users):
    task = make_task()
    make_assignment(task, users["alice"])

    service.update_task(task.id, TaskUpdate(description="More detail"), principals["manager"], now=NOW)
    service.delete_task(task.id, principals["manager"], now=NOW)

    titles = [n.title for n in db.query(Notification).filter(Notification.user_id == users["alice"].id).order_by(Notification.id)]
    assert titles == ["Task updated", "Task deleted"]
    assert db.query(Task).count() == 0


def test_list_scoping(service, make_task, make_assignment, principals, users, departments):
    mine = make_task(title="Mine")
    make_task(title="Sales work", department_id=departments["sales"].id, created_by=users["sales_manager"].id)
    make_assignment(mine, users["alice"])

    assert {t.title for t in service.list_tasks(principals["admin"])} == {"Mine", "Sales work"}
    assert [t.title for t in service.list_tasks(principals["manager"])] == ["Mine"]
    assert [t.title for t in service.list_tasks(principals["alice"])] == ["Mine"]
    assert service.list_tasks(principals["bob"]) == []
    assert len(service.list_tasks(principals["bob"], scope="all")) == 2


def test_list_attaches_effective_weights_across_project(service, make_task, make_project, principals):
    project = make_project()
    a = make_task(title="A", project_id=project.id, weight=40)
    b = make_task(title="B", project_id=project.id)
    c = make_task(title="C", project_id=project.id)

    listed = {t.id: t.effective_weight for t in service.list_tasks(principals["admin"], project_id=project.id, limit=1)}
    assert len(listed) == 1

    weights = {t.id: t.effective_weight for t in service.list_tasks(principals["admin"], project_id=project.id)}
    assert weights == {a.id: 40, b.id: 30, c.id: 30}


def test_stats_by_scope(service, make_task, make_assignment, principals, users, departments):
    t1 = make_task(status=TaskStatus.IN_PROGRESS)
    make_task(status=TaskStatus.COMPLETED)
    make_task(department_id=departments["sales"].id)
    make_assignment(t1, users["alice"])

    assert service.stats(principals["admin"]) == {"todo": 1, "in_progress": 1, "completed": 1}
    assert service.stats(principals["manager"]) == {"todo": 0, "in_progress": 1, "completed": 1}
    assert service.stats(principals["alice"]) == {"todo": 0, "in_progress": 1, "completed": 0}


def test_comments(service, make_task, principals, broadcaster):
    task = make_task()
    with pytest.raises(ValidationError):
        service.add_comment(task.id, principals["alice"], "   ")

    first = service.add_comment(task.id, principals["alice"], "  Looks good  ")
    second = service.add_comment(task.id, principals["bob"], "x" * 6000)

    assert first.content == "Looks good"
    assert len(second.content) == 5000
    assert [c.id for c in service.list_comments(task.id)] == [first.id, second.id]
    assert ("task_comments", "create", first.id, {"task_id": task.id}) in broadcaster.emitted


def test_comments_on_missing_task(service, principals):
    with pytest.raises(NotFoundError):
        service.list_comments(404)
