# dept_scheduler/config/settings.py
# Runtime configuration for the scheduling backend

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings grouped by concern"""

    DATABASE = {
        'url': os.getenv('DATABASE_URL', 'sqlite:///./dept_scheduler.db'),
        'sslmode': os.getenv('DB_SSLMODE', 'require'),
    }

    AUTH = {
        'secret_key': os.getenv('SECRET_KEY', 'change-me'),
        'algorithm': os.getenv('ALGORITHM', 'HS256'),
        'max_failed_logins': int(os.getenv('MAX_FAILED_LOGINS', 5)),
    }

    CORS = {
        'origins': _split_csv(os.getenv(
            'CORS_ORIGINS',
            'http://localhost:3000,http://localhost:3001,http://127.0.0.1:3000',
        )),
    }

    LOGGING = {
        'level': os.getenv('LOG_LEVEL', 'INFO').upper(),
    }

    TASKS = {
        'reject_reason_max_length': int(os.getenv('REJECT_REASON_MAX_LENGTH', 1000)),
        'comment_max_length': int(os.getenv('COMMENT_MAX_LENGTH', 5000)),
        'default_list_limit': 100,
        'max_list_limit': 500,
    }

    EVENTS = {
        'default_list_limit': 200,
        'max_list_limit': 500,
    }

    CONFLICTS = {
        'max_workers': int(os.getenv('CONFLICT_CHECK_WORKERS', 8)),
    }

    REMINDERS = {
        'interval_minutes': int(os.getenv('REMINDER_INTERVAL_MINUTES', 5)),
        'lead_minutes': int(os.getenv('REMINDER_LEAD_MINUTES', 30)),
    }

    @classmethod
    def clamp_limit(cls, limit: int, group: dict) -> int:
        """Clamp a requested page size to the configured bounds of a group"""
        if not limit or limit < 1:
            return group['default_list_limit']
        return min(limit, group['max_list_limit'])
