from typing import Dict, Optional

from pydantic import BaseModel


class MonthCount(BaseModel):
    month: int
    count: int


class DepartmentCount(BaseModel):
    department_id: Optional[int] = None
    department: Optional[str] = None
    count: int


class DepartmentSummary(BaseModel):
    department_id: int
    tasks: Dict[str, int]
    events: Dict[str, int]
