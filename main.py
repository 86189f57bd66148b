import logging

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dept_scheduler.config.settings import Settings
from dept_scheduler.database import SessionLocal, init_db
from dept_scheduler.exceptions import SchedulerError
from dept_scheduler.routers import (
    departments, events, labels, notifications, participants, projects, reports, rooms, schedule, tasks, users,
)
from dept_scheduler.services.scheduler import ReminderScheduler
from dept_scheduler.services.websocket_manager import WebSocketManager
from dept_scheduler.utils.auth import user_from_token

logging.basicConfig(
    level=Settings.LOGGING["level"],
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Department Scheduler API")

# Shared by the services (through get_broadcaster) and the /ws endpoint
websocket_manager = WebSocketManager()
app.state.broadcaster = websocket_manager
reminder_scheduler = ReminderScheduler(broadcaster=websocket_manager)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings.CORS["origins"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SchedulerError)
async def scheduler_error_handler(request: Request, exc: SchedulerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Route registration
app.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
app.include_router(events.router, prefix="/events", tags=["Events"])
app.include_router(participants.router, prefix="/participants", tags=["Participants"])
app.include_router(projects.router, prefix="/projects", tags=["Projects"])
app.include_router(rooms.router, prefix="/rooms", tags=["Rooms"])
app.include_router(labels.router, prefix="/labels", tags=["Labels"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(departments.router, prefix="/departments", tags=["Departments"])
app.include_router(reports.router, prefix="/reports", tags=["Reports"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(schedule.router, prefix="/schedule", tags=["Schedule"])


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Create tables and start the reminder scheduler"""
    logger.info("Starting Department Scheduler API...")
    init_db()
    reminder_scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Department Scheduler API...")
    reminder_scheduler.stop()


@app.get("/")
def read_root():
    return {"message": "Department Scheduler API"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "scheduler": reminder_scheduler.get_status()["status"],
        "connections": websocket_manager.get_total_connections(),
    }


# WebSocket endpoint for real-time push, authenticated with ?token=
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = None):
    user_id = None
    if token:
        db = SessionLocal()
        try:
            user = user_from_token(token, db)
            if user and not user.is_locked:
                user_id = user.id
        except Exception:
            logger.exception("WebSocket authentication failed")
        finally:
            db.close()

    if user_id is None:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    await websocket_manager.connect(websocket, user_id)
    try:
        while True:
            # Clients only listen; anything they send is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        websocket_manager.disconnect(websocket, user_id)
