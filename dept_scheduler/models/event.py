# dept_scheduler/models/event.py
import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from dept_scheduler.database import Base


class EventStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class EventType(str, enum.Enum):
    WORK = "work"          # business trip, blocks the participants' calendars
    MEETING = "meeting"


class ParticipantStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


# Association table for the auxiliary departments an event is shared with
event_departments = Table(
    'event_departments',
    Base.metadata,
    Column('event_id', Integer, ForeignKey('events.id', ondelete="CASCADE"), primary_key=True),
    Column('department_id', Integer, ForeignKey('departments.id', ondelete="CASCADE"), primary_key=True)
)


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    events = relationship("Event", back_populates="room")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    status = Column(Enum(EventStatus), nullable=False, default=EventStatus.PENDING)
    type = Column(Enum(EventType), nullable=False, default=EventType.WORK)
    repeat = Column(String(100), nullable=True)

    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    is_global = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    room = relationship("Room", back_populates="events")
    creator = relationship("User", foreign_keys=[created_by])
    department = relationship("Department", foreign_keys=[department_id])
    extra_departments = relationship("Department", secondary=event_departments)
    participants = relationship("Participant", back_populates="event", cascade="all, delete-orphan")


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_participant_event_user"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(ParticipantStatus), nullable=False, default=ParticipantStatus.PENDING)
    adjustment_note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    event = relationship("Event", back_populates="participants")
    user = relationship("User")
