# dept_scheduler/routers/reports.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.models.event import EventStatus, EventType
from dept_scheduler.schemas.report import DepartmentCount, DepartmentSummary, MonthCount
from dept_scheduler.services.report_service import ReportService
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)


@router.get("/events-by-month", response_model=List[MonthCount])
def events_by_month(
    year: Optional[int] = None,
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    status: Optional[EventStatus] = None,
    type: Optional[EventType] = None,
    department_id: Optional[int] = None,
    service: ReportService = Depends(get_report_service),
    principal: Principal = Depends(get_principal)
):
    return service.events_by_month(
        year=year,
        start_from=start_from,
        start_to=start_to,
        status=status,
        event_type=type,
        department_id=department_id,
    )


@router.get("/events-by-department", response_model=List[DepartmentCount])
def events_by_department(
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    status: Optional[EventStatus] = None,
    type: Optional[EventType] = None,
    service: ReportService = Depends(get_report_service),
    principal: Principal = Depends(get_principal)
):
    return service.events_by_department(start_from=start_from, start_to=start_to, status=status, event_type=type)


@router.get("/department-summary", response_model=DepartmentSummary)
def department_summary(
    department_id: Optional[int] = None,
    service: ReportService = Depends(get_report_service),
    principal: Principal = Depends(get_principal)
):
    return service.department_summary(principal, department_id=department_id)
