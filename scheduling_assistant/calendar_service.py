"""Calendar service implementation using SQLAlchemy.

Note on timezone handling:
- This service stores and queries every datetime in UTC
- SQLite drops timezone info on storage, so values read back are naive UTC;
  ensure_utc() normalises them before they leave the service
- Display formatting in local time is done by callers, not here
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from loguru import logger
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .errors import ProviderError
from .models import AvailabilityBlock, Calendar, Meeting, MeetingAttendee, MeetingStatus, Room
from .provider import CalendarProvider
from .schemas import CalendarEvent, FreeBusySegment, FreeBusyStatus
from .time_utils import ensure_utc, overlaps

ACTIVE_STATUSES = [MeetingStatus.CONFIRMED, MeetingStatus.TENTATIVE]


def _dedupe(addresses: List[str]) -> List[str]:
    seen = []
    for address in addresses:
        address = address.strip()
        if address and address not in seen:
            seen.append(address)
    return seen


class CalendarService:
    """Service class for calendar operations."""

    def __init__(self, session_factory: sessionmaker, log=None):
        """Initialize the calendar service.

        Args:
            session_factory: SQLAlchemy session factory
            log: Logger to report through (defaults to a bound loguru logger)
        """
        self.session_factory = session_factory
        self.log = log or logger.bind(component="calendar_service")

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with self.session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            self.log.error(f"Database error while trying to {action}: {e}")
            raise ProviderError(f"Could not {action}") from e

    def create_calendar(self, owner: str, name: str, time_zone: str = "UTC") -> Calendar:
        """Create a new calendar."""
        calendar = Calendar(owner=owner, name=name, time_zone=time_zone)
        with self._session("create calendar") as session:
            session.add(calendar)
            session.commit()
            session.refresh(calendar)
            return calendar

    def get_or_create_calendar(self, owner: str, time_zone: str = "UTC") -> Calendar:
        """Calendar owned by ``owner``, created on first use."""
        with self._session("load calendar") as session:
            calendar = session.query(Calendar).filter(Calendar.owner == owner).first()
            if calendar:
                return calendar
        return self.create_calendar(owner, f"{owner} calendar", time_zone)

    def create_meeting(
        self,
        organizer: str,
        subject: str,
        start_time: datetime,
        end_time: datetime,
        attendees: Optional[List[str]] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        room: Optional[str] = None,
        status: MeetingStatus = MeetingStatus.CONFIRMED,
    ) -> Meeting:
        """
        Create a meeting on the organizer's calendar.

        The organizer, every attendee and the room (if any) are stored as
        meeting attendees, so the meeting shows up when any of them is looked up.

        Args:
            organizer: Address of the organizer
            subject: Subject of the meeting
            start_time: Start time of the meeting
            end_time: End time of the meeting
            attendees: Invited addresses
            description: Optional description
            location: Optional location
            room: Optional room address to book
            status: Status of the meeting (default: CONFIRMED)

        Returns:
            The created meeting
        """
        calendar = self.get_or_create_calendar(organizer)
        addresses = _dedupe([organizer, *(attendees or []), *([room] if room else [])])

        meeting = Meeting(
            calendar_id=calendar.id,
            subject=subject,
            start_time=start_time,
            end_time=end_time,
            status=status,
            description=description,
            location=location,
        )
        meeting.attendees = [MeetingAttendee(address=a) for a in addresses]

        with self._session("create meeting") as session:
            session.add(meeting)
            session.commit()
            session.refresh(meeting)
            self.log.info(f"Created meeting {meeting.id} '{subject}' for {len(addresses)} attendees")
            return meeting

    def get_meeting(self, meeting_id: int) -> Optional[Meeting]:
        """Get a meeting by ID."""
        with self._session("load meeting") as session:
            return session.get(Meeting, meeting_id)

    def update_meeting(
        self,
        meeting_id: int,
        subject: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        attendees: Optional[List[str]] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Optional[Meeting]:
        """
        Update an existing meeting.

        Returns:
            The updated meeting, or None if it does not exist
        """
        with self._session("update meeting") as session:
            meeting = session.get(Meeting, meeting_id)
            if not meeting:
                return None

            if subject is not None:
                meeting.subject = subject
            if start_time is not None:
                meeting.start_time = ensure_utc(start_time)
            if end_time is not None:
                meeting.end_time = ensure_utc(end_time)
            if description is not None:
                meeting.description = description
            if location is not None:
                meeting.location = location
            if attendees is not None:
                organizer = meeting.calendar.owner
                meeting.attendees = [
                    MeetingAttendee(address=a) for a in _dedupe([organizer, *attendees])
                ]

            session.commit()
            session.refresh(meeting)
            return meeting

    def cancel_meeting(self, meeting_id: int) -> bool:
        """Cancel a meeting by setting its status to CANCELLED.

        Returns:
            bool: True if successfully cancelled, False if it does not exist
        """
        with self._session("cancel meeting") as session:
            meeting = session.get(Meeting, meeting_id)
            if not meeting:
                return False

            meeting.status = MeetingStatus.CANCELLED
            session.commit()
            self.log.info(f"Cancelled meeting {meeting_id}")
            return True

    def get_meetings_in_range(
        self, address: str, start_time: datetime, end_time: datetime
    ) -> List[Meeting]:
        """Active meetings ``address`` attends that overlap the range."""
        start_time, end_time = ensure_utc(start_time), ensure_utc(end_time)
        with self._session("load meetings") as session:
            return (
                session.query(Meeting)
                .join(MeetingAttendee)
                .filter(
                    and_(
                        MeetingAttendee.address == address,
                        Meeting.status.in_(ACTIVE_STATUSES),
                        Meeting.start_time < end_time,
                        Meeting.end_time > start_time,
                    )
                )
                .order_by(Meeting.start_time)
                .all()
            )

    def add_availability_block(
        self,
        address: str,
        status: FreeBusyStatus,
        start_time: datetime,
        end_time: datetime,
        note: Optional[str] = None,
    ) -> AvailabilityBlock:
        """Record a free/busy segment such as out of office."""
        block = AvailabilityBlock(
            address=address,
            status=status,
            start_time=ensure_utc(start_time),
            end_time=ensure_utc(end_time),
            note=note,
        )
        with self._session("add availability block") as session:
            session.add(block)
            session.commit()
            session.refresh(block)
            return block

    def get_availability_blocks(
        self, address: str, start_time: datetime, end_time: datetime
    ) -> List[AvailabilityBlock]:
        """Availability blocks for ``address`` that overlap the range."""
        start_time, end_time = ensure_utc(start_time), ensure_utc(end_time)
        with self._session("load availability") as session:
            return (
                session.query(AvailabilityBlock)
                .filter(
                    AvailabilityBlock.address == address,
                    AvailabilityBlock.start_time < end_time,
                    AvailabilityBlock.end_time > start_time,
                )
                .order_by(AvailabilityBlock.start_time)
                .all()
            )

    def add_room(
        self,
        address: str,
        display_name: str,
        capacity: Optional[int] = None,
        equipment: Optional[List[str]] = None,
        location: Optional[str] = None,
    ) -> Room:
        """Register a bookable room."""
        room = Room(
            address=address,
            display_name=display_name,
            capacity=capacity,
            equipment=",".join(e.strip().lower() for e in equipment or []),
            location=location,
        )
        with self._session("add room") as session:
            session.add(room)
            session.commit()
            session.refresh(room)
            return room

    def get_rooms(self) -> List[Room]:
        """All rooms in the directory."""
        with self._session("load rooms") as session:
            return session.query(Room).order_by(Room.display_name).all()

    def find_available_rooms(
        self,
        start_time: datetime,
        end_time: datetime,
        capacity: Optional[int] = None,
        equipment: Optional[List[str]] = None,
    ) -> List[Room]:
        """
        Rooms that fit the requirements and are free for the whole window.

        Args:
            start_time: Start of the window
            end_time: End of the window
            capacity: Minimum number of seats
            equipment: Equipment every returned room must have

        Returns:
            Matching free rooms ordered by capacity, smallest first
        """
        wanted = {e.strip().lower() for e in equipment or []}
        available = []
        for room in self.get_rooms():
            if capacity and (room.capacity or 0) < capacity:
                continue
            if not wanted.issubset(room.equipment_list):
                continue
            if self.get_meetings_in_range(room.address, start_time, end_time):
                continue
            blocks = self.get_availability_blocks(room.address, start_time, end_time)
            if any(b.status != FreeBusyStatus.FREE for b in blocks):
                continue
            available.append(room)

        return sorted(available, key=lambda r: r.capacity or 0)


class SqlCalendarProvider(CalendarProvider):
    """Calendar provider reading from :class:`CalendarService`.

    Queries run on the calling thread, so lookups through this provider are
    sequential: the detector's fan-out never overlaps them and a search
    timeout only takes effect between slots. An in-memory SQLite database
    keeps one connection per thread, which rules out handing queries to
    worker threads.
    """

    def __init__(self, calendar_service: CalendarService):
        self.calendar_service = calendar_service

    async def get_events(
        self, attendee: str, window_start: datetime, window_end: datetime
    ) -> List[CalendarEvent]:
        meetings = self.calendar_service.get_meetings_in_range(
            attendee, window_start, window_end
        )
        return [
            CalendarEvent(start=m.start_utc, end=m.end_utc, subject=m.subject)
            for m in meetings
        ]

    async def get_free_busy(
        self, attendee: str, window_start: datetime, window_end: datetime
    ) -> List[FreeBusySegment]:
        blocks = self.calendar_service.get_availability_blocks(
            attendee, window_start, window_end
        )
        return [
            FreeBusySegment(status=b.status, start=b.start_time, end=b.end_time)
            for b in blocks
            if overlaps(window_start, window_end, b.start_time, b.end_time)
        ]
