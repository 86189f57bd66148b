# dept_scheduler/routers/tasks.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.models.task import TaskStatus
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas import task as task_schema
from dept_scheduler.services.assignment_service import TaskAssignmentService
from dept_scheduler.services.task_service import TaskService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_task_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> TaskService:
    return TaskService(db, broadcaster)


def get_assignment_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> TaskAssignmentService:
    return TaskAssignmentService(db, broadcaster)


@router.get("/", response_model=List[task_schema.TaskOut])
def list_tasks(
    status: Optional[TaskStatus] = None,
    project_id: Optional[int] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    scope: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    return service.list_tasks(
        principal,
        status=status,
        project_id=project_id,
        start_from=start_from,
        start_to=start_to,
        scope=scope,
        limit=limit,
        offset=offset,
    )


@router.get("/stats/summary", response_model=task_schema.TaskStats)
def task_stats(
    scope: Optional[str] = None,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    return service.stats(principal, scope)


@router.post("/", response_model=task_schema.TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: task_schema.TaskCreate,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    return service.create_task(payload, principal)


@router.put("/{task_id}", response_model=task_schema.TaskOut)
def update_task(
    task_id: int,
    payload: task_schema.TaskUpdate,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    return service.update_task(task_id, payload, principal)


@router.delete("/{task_id}")
def delete_task(
    task_id: int,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    service.delete_task(task_id, principal)
    return {"message": "Deleted"}


# ===== Assignments =====

@router.post("/{task_id}/apply", response_model=task_schema.AssignmentOut, status_code=status.HTTP_201_CREATED)
def apply_task(
    task_id: int,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.apply(task_id, principal)


@router.post("/{task_id}/assign", response_model=task_schema.AssignmentOut, status_code=status.HTTP_201_CREATED)
def assign_task(
    task_id: int,
    payload: task_schema.AssignRequest,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.assign(task_id, payload.user_id, principal)


@router.post("/{task_id}/unassign", response_model=task_schema.UnassignResult)
def unassign_task(
    task_id: int,
    payload: task_schema.AssignRequest,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.unassign(task_id, payload.user_id, principal)


@router.post("/{task_id}/accept", response_model=task_schema.AssignmentOut)
def accept_task(
    task_id: int,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.accept(task_id, principal)


@router.post("/{task_id}/reject", response_model=task_schema.AssignmentOut)
def reject_task(
    task_id: int,
    payload: Optional[task_schema.RejectRequest] = None,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.reject(task_id, principal, payload.reason if payload else None)


@router.post("/{task_id}/rejection/approve", response_model=task_schema.DecisionResult)
def approve_rejection(
    task_id: int,
    payload: Optional[task_schema.RejectionDecision] = None,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.approve_rejection(task_id, principal, payload.user_id if payload else None)


@router.post("/{task_id}/rejection/deny", response_model=task_schema.DecisionResult)
def deny_rejection(
    task_id: int,
    payload: Optional[task_schema.RejectionDecision] = None,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.deny_rejection(task_id, principal, payload.user_id if payload else None)


@router.put("/{task_id}/progress", response_model=task_schema.AssignmentOut)
def update_progress(
    task_id: int,
    payload: task_schema.ProgressUpdate,
    service: TaskAssignmentService = Depends(get_assignment_service),
    principal: Principal = Depends(get_principal)
):
    return service.update_progress(task_id, principal, payload.progress)


# ===== Comments =====

@router.get("/{task_id}/comments", response_model=List[task_schema.CommentOut])
def list_comments(
    task_id: int,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    return service.list_comments(task_id)


@router.post("/{task_id}/comments", response_model=task_schema.CommentOut, status_code=status.HTTP_201_CREATED)
def create_comment(
    task_id: int,
    payload: task_schema.CommentCreate,
    service: TaskService = Depends(get_task_service),
    principal: Principal = Depends(get_principal)
):
    return service.add_comment(task_id, principal, payload.content)
