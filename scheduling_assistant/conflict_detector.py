"""Conflict detection across attendee calendars."""

import asyncio
from contextlib import nullcontext
from datetime import datetime
from typing import List, Optional

from loguru import logger

from .errors import ProviderError
from .provider import CalendarProvider
from .schemas import (
    Conflict,
    ConflictKind,
    ConflictReport,
    FreeBusyStatus,
    SchedulingRequest,
)
from .time_utils import TimeZoneLike, describe_window, overlaps


class ConflictDetector:
    """Checks a proposed window against every attendee's calendar."""

    def __init__(
        self,
        provider: CalendarProvider,
        timezone: TimeZoneLike = "UTC",
        max_concurrency: Optional[int] = None,
        log=None,
    ):
        """Initialize the detector.

        Args:
            provider: Calendar provider to read events and free/busy from
            timezone: Zone used for human-readable conflict windows
            max_concurrency: Cap on attendees looked up at the same time
            log: Logger to report through (defaults to a bound loguru logger)
        """
        self.provider = provider
        self.timezone = timezone
        self.log = log or logger.bind(component="conflict_detector")
        self._semaphore = (
            asyncio.Semaphore(max_concurrency) if max_concurrency else None
        )

    async def detect(self, request: SchedulingRequest) -> ConflictReport:
        """
        Find every conflict for the request's window.

        Attendees are looked up concurrently; results are flattened in the
        order the attendees were given, with event conflicts before
        busy-status conflicts for each attendee. An attendee whose lookup
        fails is skipped and listed in ``unchecked_attendees``.

        Args:
            request: The proposed meeting

        Returns:
            ConflictReport with conflicts in discovery order
        """
        start, end = request.proposed_start, request.proposed_end
        results = await asyncio.gather(
            *(self._check_attendee(attendee, start, end) for attendee in request.attendees)
        )

        report = ConflictReport()
        for attendee, conflicts in zip(request.attendees, results):
            if conflicts is None:
                report.unchecked_attendees.append(attendee)
            else:
                report.conflicts.extend(conflicts)

        self.log.debug(
            f"Checked {len(request.attendees)} attendees for "
            f"{describe_window(start, end, self.timezone)}: "
            f"{len(report.conflicts)} conflicts, "
            f"{len(report.unchecked_attendees)} unchecked"
        )
        return report

    async def detect_conflicts(self, request: SchedulingRequest) -> List[Conflict]:
        """Conflicts only, for callers that do not need the advisory notes."""
        report = await self.detect(request)
        return report.conflicts

    async def _check_attendee(
        self, attendee: str, start: datetime, end: datetime
    ) -> Optional[List[Conflict]]:
        async with self._semaphore or nullcontext():
            try:
                events = await self.provider.get_events(attendee, start, end)
                segments = await self.provider.get_free_busy(attendee, start, end)
            except ProviderError as e:
                self.log.warning(f"Could not check availability for {attendee}: {e}")
                return None

        conflicts = []
        for event in events:
            if overlaps(start, end, event.start, event.end):
                conflicts.append(
                    Conflict(
                        attendee=attendee,
                        kind=ConflictKind.OVERLAPPING_MEETING,
                        window_description=describe_window(
                            event.start, event.end, self.timezone
                        ),
                        detail=event.subject or "(no subject)",
                        start=event.start,
                        end=event.end,
                    )
                )

        for segment in segments:
            if segment.status != FreeBusyStatus.FREE:
                conflicts.append(
                    Conflict(
                        attendee=attendee,
                        kind=ConflictKind.BUSY_STATUS,
                        window_description=describe_window(
                            segment.start, segment.end, self.timezone
                        ),
                        detail=f"Status: {segment.status.value}",
                        start=segment.start,
                        end=segment.end,
                    )
                )
        return conflicts
