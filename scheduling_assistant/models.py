"""Database models for the reference calendar provider."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import FreeBusyStatus
from .time_utils import ensure_utc, utc_now


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class MeetingStatus(str, Enum):
    """Status of a meeting."""

    TENTATIVE = "TENTATIVE"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Calendar(Base):
    """A person's calendar, keyed by their address."""

    __tablename__ = "calendars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    time_zone: Mapped[str] = mapped_column(String, nullable=False, default="UTC")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    meetings = relationship(
        "Meeting", back_populates="calendar", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return (
            f"Calendar(id={self.id}, owner={self.owner}, "
            f"name={self.name}, time_zone={self.time_zone})"
        )


class Meeting(Base):
    """A meeting organised from a calendar, visible to all its attendees."""

    __tablename__ = "meetings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    calendar_id: Mapped[int] = mapped_column(ForeignKey("calendars.id"), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[MeetingStatus] = mapped_column(
        SQLEnum(MeetingStatus), nullable=False, default=MeetingStatus.CONFIRMED
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    calendar = relationship("Calendar", back_populates="meetings")
    attendees: Mapped[List["MeetingAttendee"]] = relationship(
        back_populates="meeting", cascade="all, delete-orphan", lazy="selectin"
    )

    def __init__(self, **kwargs):
        """Initialize meeting with UTC datetimes."""
        for key in ("start_time", "end_time"):
            if kwargs.get(key) is not None:
                kwargs[key] = ensure_utc(kwargs[key])
        super().__init__(**kwargs)

    @property
    def attendee_addresses(self) -> List[str]:
        return [a.address for a in self.attendees]

    @property
    def start_utc(self) -> datetime:
        # SQLite hands back naive values
        return ensure_utc(self.start_time)

    @property
    def end_utc(self) -> datetime:
        return ensure_utc(self.end_time)

    def __repr__(self):
        return (
            f"Meeting(id={self.id}, calendar_id={self.calendar_id}, "
            f"subject={self.subject}, start_time={self.start_time}, "
            f"end_time={self.end_time}, status={self.status})"
        )


class MeetingAttendee(Base):
    """An address invited to a meeting (people and rooms alike)."""

    __tablename__ = "meeting_attendees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    meeting_id: Mapped[int] = mapped_column(ForeignKey("meetings.id"), nullable=False)
    address: Mapped[str] = mapped_column(String(320), nullable=False, index=True)

    meeting: Mapped["Meeting"] = relationship(back_populates="attendees")


class AvailabilityBlock(Base):
    """A free/busy segment not tied to a meeting, e.g. out of office."""

    __tablename__ = "availability_blocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    status: Mapped[FreeBusyStatus] = mapped_column(
        SQLEnum(FreeBusyStatus), nullable=False, default=FreeBusyStatus.BUSY
    )
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self):
        return (
            f"AvailabilityBlock(address={self.address}, status={self.status}, "
            f"start_time={self.start_time}, end_time={self.end_time})"
        )


class Room(Base):
    """A bookable meeting room."""

    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # comma-separated, lower case
    equipment: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def equipment_list(self) -> List[str]:
        return [item for item in self.equipment.split(",") if item]

    def __repr__(self):
        return (
            f"Room(id={self.id}, address={self.address}, "
            f"display_name={self.display_name}, capacity={self.capacity})"
        )
