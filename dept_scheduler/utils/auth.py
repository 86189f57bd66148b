# dept_scheduler/utils/auth.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from dept_scheduler.config.settings import Settings
from dept_scheduler.database import get_db
from dept_scheduler.models.user import User
from dept_scheduler.utils.permissions import Principal

# Tokens are issued by the identity service; this backend only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def verify_token(token: str) -> Optional[dict]:
    """Verify JWT token and return payload without raising exceptions"""
    try:
        return jwt.decode(token, Settings.AUTH["secret_key"], algorithms=[Settings.AUTH["algorithm"]])
    except JWTError:
        return None


def user_from_token(token: str, db: Session) -> Optional[User]:
    payload = verify_token(token)
    if not payload:
        return None
    email = payload.get("sub")
    if email is None:
        return None
    return db.query(User).filter(User.email == email).first()


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user = user_from_token(token, db)
    if user is None:
        raise credentials_exception

    if user.is_locked:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is locked. Please contact an administrator.",
        )
    return user


def get_principal(current_user: User = Depends(get_current_user)) -> Principal:
    return Principal.from_user(current_user)
