import bcrypt
import pytest

from dept_scheduler.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from dept_scheduler.models import Participant, UserRole
from dept_scheduler.schemas.user import DepartmentCreate, DepartmentUpdate, UserCreate, UserUpdate
from dept_scheduler.services.department_service import DepartmentService
from dept_scheduler.services.user_service import UserService


@pytest.fixture
def departments_service(db, broadcaster):
    return DepartmentService(db, broadcaster)


@pytest.fixture
def service(db, broadcaster):
    return UserService(db, broadcaster)


def new_user(**fields):
    fields.setdefault("name", "Nina")
    fields.setdefault("email", "nina@acme.com")
    fields.setdefault("password", "s3cret-pass")
    return UserCreate(**fields)


# ----- departments ---------------------------------------------------------

def test_department_writes_are_admin_only(departments_service, principals, broadcaster):
    with pytest.raises(ForbiddenError):
        departments_service.create_department(DepartmentCreate(name="Operations"), principals["manager"])

    ops = departments_service.create_department(DepartmentCreate(name="Operations", description="Ops"), principals["admin"])
    assert [d.name for d in departments_service.list_departments()] == ["Engineering", "Operations", "Sales"]

    ops = departments_service.update_department(ops.id, DepartmentUpdate(description="Warehouse"), principals["admin"])
    assert (ops.name, ops.description) == ("Operations", "Warehouse")

    departments_service.delete_department(ops.id, principals["admin"])
    with pytest.raises(NotFoundError):
        departments_service.get_department(ops.id)
    assert [e[:2] for e in broadcaster.emitted] == [
        ("departments", "create"), ("departments", "update"), ("departments", "delete"),
    ]


def test_department_names_are_unique(departments_service, principals, departments):
    with pytest.raises(ConflictError):
        departments_service.create_department(DepartmentCreate(name="Sales"), principals["admin"])
    with pytest.raises(ConflictError):
        departments_service.update_department(
            departments["engineering"].id, DepartmentUpdate(name="Sales"), principals["admin"]
        )
    # Renaming to its own name is fine
    same = departments_service.update_department(
        departments["sales"].id, DepartmentUpdate(name="Sales"), principals["admin"]
    )
    assert same.name == "Sales"


def test_department_in_use_is_not_deleted(departments_service, principals, departments, users):
    with pytest.raises(ConflictError) as exc:
        departments_service.delete_department(departments["sales"].id, principals["admin"])
    assert exc.value.message == "Department still has users"


# ----- users ---------------------------------------------------------------

def test_list_users_is_scoped(service, principals, users):
    assert len(service.list_users(principals["admin"])) == 6
    mine = service.list_users(principals["manager"])
    assert sorted(u.email for u in mine) == ["alice@acme.com", "bob@acme.com", "max@acme.com"]
    assert [u.id for u in service.list_users(principals["admin"], limit=2, offset=1)] == [
        users["manager"].id, users["sales_manager"].id,
    ]
    with pytest.raises(ForbiddenError):
        service.list_users(principals["alice"])


def test_get_user_visibility(service, principals, users):
    assert service.get_user(users["alice"].id, principals["alice"]).email == "alice@acme.com"
    assert service.get_user(users["alice"].id, principals["manager"]).id == users["alice"].id
    assert service.get_user(users["carol"].id, principals["admin"]).id == users["carol"].id
    with pytest.raises(ForbiddenError):
        service.get_user(users["bob"].id, principals["alice"])
    with pytest.raises(ForbiddenError):
        service.get_user(users["carol"].id, principals["manager"])
    with pytest.raises(NotFoundError):
        service.get_user(999, principals["admin"])


def test_manager_creates_employees_in_own_department(service, principals, users, broadcaster):
    user = service.create_user(new_user(), principals["manager"])
    assert user.role == UserRole.EMPLOYEE
    assert user.department_id == users["manager"].department_id
    assert bcrypt.checkpw(b"s3cret-pass", user.hashed_password.encode("utf-8"))
    assert broadcaster.emitted[-1][:3] == ("users", "create", user.id)

    with pytest.raises(ForbiddenError):
        service.create_user(new_user(email="m2@acme.com", role=UserRole.MANAGER), principals["manager"])
    with pytest.raises(ForbiddenError):
        service.create_user(
            new_user(email="s2@acme.com", department_id=users["carol"].department_id), principals["manager"]
        )
    with pytest.raises(ForbiddenError):
        service.create_user(new_user(email="e2@acme.com"), principals["alice"])


def test_create_user_checks_email_and_department(service, principals):
    with pytest.raises(ConflictError):
        service.create_user(new_user(email="alice@acme.com"), principals["admin"])
    with pytest.raises(NotFoundError):
        service.create_user(new_user(department_id=999), principals["admin"])

    admin = service.create_user(new_user(role=UserRole.ADMIN), principals["admin"])
    assert admin.department_id is None


def test_update_user_rules(service, principals, users):
    alice = service.update_user(users["alice"].id, UserUpdate(name="Alice B"), principals["alice"])
    assert alice.name == "Alice B"

    with pytest.raises(ForbiddenError):
        service.update_user(users["alice"].id, UserUpdate(role=UserRole.MANAGER), principals["alice"])
    with pytest.raises(ForbiddenError):
        service.update_user(users["alice"].id, UserUpdate(department_id=None), principals["alice"])
    with pytest.raises(ForbiddenError):
        service.update_user(users["bob"].id, UserUpdate(name="Robert"), principals["alice"])
    with pytest.raises(ConflictError):
        service.update_user(users["alice"].id, UserUpdate(email="bob@acme.com"), principals["admin"])

    carol = service.update_user(
        users["carol"].id,
        UserUpdate(role=UserRole.MANAGER, department_id=users["alice"].department_id, password="n3w-pass"),
        principals["admin"],
    )
    assert (carol.role, carol.department_id) == (UserRole.MANAGER, users["alice"].department_id)
    assert bcrypt.checkpw(b"n3w-pass", carol.hashed_password.encode("utf-8"))


def test_delete_user(db, service, principals, users, make_task, make_trip):
    with pytest.raises(ValidationError):
        service.delete_user(users["admin"].id, principals["admin"])
    with pytest.raises(ForbiddenError):
        service.delete_user(users["bob"].id, principals["manager"])

    make_task()
    with pytest.raises(ConflictError) as exc:
        service.delete_user(users["manager"].id, principals["admin"])
    assert exc.value.message == "User still owns tasks"

    trip = make_trip([users["bob"], users["alice"]])
    bob_id = users["bob"].id
    service.delete_user(bob_id, principals["admin"])

    with pytest.raises(NotFoundError):
        service.get_user(bob_id, principals["admin"])
    assert [p.user_id for p in db.query(Participant).filter(Participant.event_id == trip.id)] == [users["alice"].id]
