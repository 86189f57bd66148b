# dept_scheduler/routers/departments.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas.user import DepartmentCreate, DepartmentOut, DepartmentUpdate
from dept_scheduler.services.department_service import DepartmentService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_department_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> DepartmentService:
    return DepartmentService(db, broadcaster)


@router.get("/", response_model=List[DepartmentOut])
def list_departments(service: DepartmentService = Depends(get_department_service), principal: Principal = Depends(get_principal)):
    return service.list_departments()


@router.get("/{department_id}", response_model=DepartmentOut)
def get_department(department_id: int, service: DepartmentService = Depends(get_department_service), principal: Principal = Depends(get_principal)):
    return service.get_department(department_id)


@router.post("/", response_model=DepartmentOut, status_code=status.HTTP_201_CREATED)
def create_department(payload: DepartmentCreate, service: DepartmentService = Depends(get_department_service), principal: Principal = Depends(get_principal)):
    return service.create_department(payload, principal)


@router.put("/{department_id}", response_model=DepartmentOut)
def update_department(department_id: int, payload: DepartmentUpdate, service: DepartmentService = Depends(get_department_service), principal: Principal = Depends(get_principal)):
    return service.update_department(department_id, payload, principal)


@router.delete("/{department_id}")
def delete_department(department_id: int, service: DepartmentService = Depends(get_department_service), principal: Principal = Depends(get_principal)):
    service.delete_department(department_id, principal)
    return {"message": "Deleted"}
