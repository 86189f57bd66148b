# dept_scheduler/routers/deps.py
from fastapi import Request

from dept_scheduler.services.websocket_manager import Broadcaster, NullBroadcaster


def get_broadcaster(request: Request) -> Broadcaster:
    """The app-wide broadcaster set up at startup, or a no-op one"""
    return getattr(request.app.state, "broadcaster", None) or NullBroadcaster()
