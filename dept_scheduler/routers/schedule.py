# dept_scheduler/routers/schedule.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.schemas.schedule import ScheduleOut
from dept_scheduler.services.schedule_service import ScheduleService
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


@router.get("/upcoming", response_model=ScheduleOut)
def upcoming(
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    return ScheduleService(db).upcoming(principal, start_from=start_from, start_to=start_to, limit=limit)
