"""Value objects passed in and out of the scheduling core.

Everything here is request scoped: built per call, never persisted.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidRequestError
from .strategy_models import ResolutionDirective, SearchStrategy
from .time_utils import ensure_utc


class FreeBusyStatus(str, Enum):
    """Coarse availability reported by a free/busy lookup."""

    FREE = "free"
    BUSY = "busy"
    TENTATIVE = "tentative"
    OUT_OF_OFFICE = "outOfOffice"


class CalendarEvent(BaseModel):
    """An event on an attendee's calendar, as returned by a provider."""

    start: datetime
    end: datetime
    subject: str = ""

    @field_validator("start", "end")
    @classmethod
    def normalize(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class FreeBusySegment(BaseModel):
    """A free/busy interval, as returned by a provider."""

    status: FreeBusyStatus
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class SchedulingRequest(BaseModel):
    """A proposed meeting window for a set of attendees.

    Build one with :meth:`create`, which derives whichever of ``proposed_end``
    and ``duration_minutes`` is missing and reports bad input as
    :class:`InvalidRequestError`.
    """

    model_config = ConfigDict(frozen=True)

    attendees: List[str] = Field(default_factory=list)
    proposed_start: datetime
    proposed_end: datetime
    duration_minutes: int
    subject: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    needs_room: bool = False
    room_capacity: Optional[int] = None
    room_equipment: List[str] = Field(default_factory=list)

    @field_validator("attendees")
    @classmethod
    def check_attendees(cls, attendees: List[str]) -> List[str]:
        cleaned = [a.strip() for a in attendees]
        if any(not a for a in cleaned):
            raise ValueError("attendee identifiers must not be blank")
        return cleaned

    @field_validator("proposed_start", "proposed_end")
    @classmethod
    def check_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("proposed times must be timezone-aware")
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_window(self) -> "SchedulingRequest":
        if self.duration_minutes <= 0:
            raise ValueError("duration must be positive")
        if self.proposed_end <= self.proposed_start:
            raise ValueError("proposed end must be after proposed start")
        if self.proposed_end - self.proposed_start != timedelta(minutes=self.duration_minutes):
            raise ValueError("proposed window does not match duration")
        return self

    @classmethod
    def create(
        cls,
        attendees: List[str],
        start: datetime,
        end: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        **details: Any,
    ) -> "SchedulingRequest":
        """Validate caller input into a request."""
        if end is None and duration_minutes is None:
            raise InvalidRequestError("Either an end time or a duration is required")
        try:
            if end is None:
                end = start + timedelta(minutes=duration_minutes)
            elif duration_minutes is None:
                duration_minutes = int((end - start).total_seconds() // 60)
            return cls(
                attendees=list(attendees),
                proposed_start=start,
                proposed_end=end,
                duration_minutes=duration_minutes,
                **details,
            )
        except (ValidationError, TypeError) as e:
            raise InvalidRequestError(f"Invalid scheduling request: {e}") from e

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    def with_window(self, start: datetime, end: datetime) -> "SchedulingRequest":
        """Same request, different window of the same length."""
        return self.model_copy(
            update={"proposed_start": ensure_utc(start), "proposed_end": ensure_utc(end)}
        )

    def shifted(self, delta: timedelta) -> "SchedulingRequest":
        return self.with_window(self.proposed_start + delta, self.proposed_end + delta)


class ConflictKind(str, Enum):
    """Where a conflict was found."""

    OVERLAPPING_MEETING = "overlapping-meeting"
    BUSY_STATUS = "busy-status"


class Conflict(BaseModel):
    """A collision between the proposed window and one attendee's commitment."""

    attendee: str
    kind: ConflictKind
    window_description: str
    detail: str
    start: datetime
    end: datetime


class ConflictReport(BaseModel):
    """Conflicts found for a request plus the attendees that could not be checked."""

    conflicts: List[Conflict] = Field(default_factory=list)
    unchecked_attendees: List[str] = Field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def is_complete(self) -> bool:
        return not self.unchecked_attendees

    @property
    def warnings(self) -> List[str]:
        return [
            f"Could not verify availability for {attendee}"
            for attendee in self.unchecked_attendees
        ]

    def by_attendee(self) -> Dict[str, List[Conflict]]:
        grouped: Dict[str, List[Conflict]] = {}
        for conflict in self.conflicts:
            grouped.setdefault(conflict.attendee, []).append(conflict)
        return grouped


class TimeSlotCandidate(BaseModel):
    """A proposed alternative window."""

    start: datetime
    end: datetime
    confidence: float = Field(
        ge=0.0,
        le=1.0,
        description=(
            "Fixed presentation heuristic for how closely the slot follows the "
            "request or preferred hours. Not a probability and not derived from data."
        ),
    )
    verified: bool = Field(
        True,
        description="False for fallback suggestions that were never checked for conflicts",
    )
    strategy: SearchStrategy
    unchecked_attendees: List[str] = Field(
        default_factory=list,
        description="Attendees whose calendars could not be read when the slot was checked",
    )

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class OutcomeKind(str, Enum):
    """Result of resolving a directive."""

    RESCHEDULED = "rescheduled"
    ALTERNATIVES_OFFERED = "alternatives-offered"
    FORCED = "forced"
    NO_ALTERNATIVES_FOUND = "no-alternatives-found"


class ResolutionOutcome(BaseModel):
    """What the resolution engine decided for a directive."""

    kind: OutcomeKind
    directive: ResolutionDirective
    message: str
    new_start: Optional[datetime] = None
    new_end: Optional[datetime] = None
    candidates: List[TimeSlotCandidate] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
