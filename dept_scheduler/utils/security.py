# dept_scheduler/utils/security.py
import bcrypt


def get_password_hash(password: str) -> str:
    """Hash a plain-text password with bcrypt"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
