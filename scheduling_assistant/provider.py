"""Calendar provider interface consumed by the scheduling core."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from .schemas import CalendarEvent, FreeBusySegment


class CalendarProvider(ABC):
    """Read access to attendee calendars.

    Implementations raise :class:`~scheduling_assistant.errors.ProviderError`
    when a lookup fails. The core treats that as "no data for this attendee".
    """

    @abstractmethod
    async def get_events(
        self, attendee: str, window_start: datetime, window_end: datetime
    ) -> List[CalendarEvent]:
        """Events on the attendee's calendar touching the window."""

    @abstractmethod
    async def get_free_busy(
        self, attendee: str, window_start: datetime, window_end: datetime
    ) -> List[FreeBusySegment]:
        """Free/busy segments for the attendee over the window."""
