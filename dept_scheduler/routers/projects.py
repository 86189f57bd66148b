# dept_scheduler/routers/projects.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas.project import ProjectCreate, ProjectUpdate, ProjectOut, ProjectProgressOut
from dept_scheduler.services.project_service import ProjectService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_project_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> ProjectService:
    return ProjectService(db, broadcaster)


@router.get("/", response_model=List[ProjectProgressOut])
def get_all_projects(
    service: ProjectService = Depends(get_project_service),
    principal: Principal = Depends(get_principal)
):
    """Projects with their completion percentage and per-task effective weights"""
    return service.list_projects(principal)


@router.get("/{project_id}/progress", response_model=ProjectProgressOut)
def get_project_progress(
    project_id: int,
    service: ProjectService = Depends(get_project_service),
    principal: Principal = Depends(get_principal)
):
    return service.get_progress(project_id)


@router.post("/", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    service: ProjectService = Depends(get_project_service),
    principal: Principal = Depends(get_principal)
):
    """Create a new project - only admins and managers can create projects"""
    return service.create_project(payload, principal)


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: int,
    payload: ProjectUpdate,
    service: ProjectService = Depends(get_project_service),
    principal: Principal = Depends(get_principal)
):
    return service.update_project(project_id, payload, principal)


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    service: ProjectService = Depends(get_project_service),
    principal: Principal = Depends(get_principal)
):
    service.delete_project(project_id, principal)
    return {"message": "Deleted"}
