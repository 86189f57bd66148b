# dept_scheduler/routers/users.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dept_scheduler.database import get_db
from dept_scheduler.routers.deps import get_broadcaster
from dept_scheduler.schemas.event import ConflictCheckOut
from dept_scheduler.schemas.user import UserBasic, UserCreate, UserUpdate
from dept_scheduler.services.account_service import AccountService
from dept_scheduler.services.user_service import UserService
from dept_scheduler.services.websocket_manager import Broadcaster
from dept_scheduler.utils.auth import get_principal
from dept_scheduler.utils.permissions import Principal

router = APIRouter()


def get_account_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> AccountService:
    return AccountService(db, broadcaster)


def get_user_service(db: Session = Depends(get_db), broadcaster: Broadcaster = Depends(get_broadcaster)) -> UserService:
    return UserService(db, broadcaster)


@router.get("/", response_model=List[UserBasic])
def list_users(
    limit: int = 50,
    offset: int = 0,
    service: UserService = Depends(get_user_service),
    principal: Principal = Depends(get_principal)
):
    """Admins see everyone, managers their own department"""
    return service.list_users(principal, limit=limit, offset=offset)


@router.get("/{user_id}", response_model=UserBasic)
def get_user(user_id: int, service: UserService = Depends(get_user_service), principal: Principal = Depends(get_principal)):
    return service.get_user(user_id, principal)


@router.post("/", response_model=UserBasic, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, service: UserService = Depends(get_user_service), principal: Principal = Depends(get_principal)):
    return service.create_user(payload, principal)


@router.put("/{user_id}", response_model=UserBasic)
def update_user(user_id: int, payload: UserUpdate, service: UserService = Depends(get_user_service), principal: Principal = Depends(get_principal)):
    return service.update_user(user_id, payload, principal)


@router.delete("/{user_id}")
def delete_user(user_id: int, service: UserService = Depends(get_user_service), principal: Principal = Depends(get_principal)):
    service.delete_user(user_id, principal)
    return {"message": "Deleted"}


@router.get("/{user_id}/business-trip-conflict", response_model=ConflictCheckOut)
def business_trip_conflict(
    user_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: AccountService = Depends(get_account_service),
    principal: Principal = Depends(get_principal)
):
    result = service.check_trip_conflict(user_id, principal, start, end)
    return {"has_conflict": result.has_conflict, "message": result.message, "conflict": result.details}


@router.post("/{user_id}/unlock")
def unlock_account(
    user_id: int,
    service: AccountService = Depends(get_account_service),
    principal: Principal = Depends(get_principal)
):
    user = service.unlock(user_id, principal)
    return {"message": "Account unlocked successfully", "user": UserBasic.model_validate(user)}
