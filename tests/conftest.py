"""
Pytest configuration file for the scheduling assistant.
Provides an in-memory calendar provider and the core components built on it.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Set

import logfire
import pytest

from scheduling_assistant.conflict_detector import ConflictDetector
from scheduling_assistant.errors import ProviderError
from scheduling_assistant.provider import CalendarProvider
from scheduling_assistant.resolution import ResolutionPolicyEngine
from scheduling_assistant.schemas import CalendarEvent, FreeBusySegment, FreeBusyStatus
from scheduling_assistant.slot_searcher import AlternativeSlotSearcher
from scheduling_assistant.strategy_models import SearchPolicy


def utc_datetime(*args, **kwargs) -> datetime:
    """Create a UTC datetime."""
    return datetime(*args, **kwargs, tzinfo=timezone.utc)


class FakeCalendarProvider(CalendarProvider):
    """Calendar provider backed by dictionaries.

    Like real backends, event lookups also return events that only touch the
    window edges; the detector is expected to filter those out.
    """

    def __init__(self):
        self.events: Dict[str, List[CalendarEvent]] = {}
        self.segments: Dict[str, List[FreeBusySegment]] = {}
        self.failing: Set[str] = set()
        self.delays: Dict[str, float] = {}
        self.calls: List[tuple] = []

    def add_event(self, attendee, start, end, subject="Meeting"):
        self.events.setdefault(attendee, []).append(
            CalendarEvent(start=start, end=end, subject=subject)
        )

    def add_status(self, attendee, start, end, status=FreeBusyStatus.BUSY):
        self.segments.setdefault(attendee, []).append(
            FreeBusySegment(status=status, start=start, end=end)
        )

    async def _lookup(self, kind, attendee, start, end):
        self.calls.append((kind, attendee, start, end))
        if attendee in self.delays:
            await asyncio.sleep(self.delays[attendee])
        if attendee in self.failing:
            raise ProviderError(f"Access denied for {attendee}", attendee=attendee)

    async def get_events(self, attendee, window_start, window_end):
        await self._lookup("events", attendee, window_start, window_end)
        return [
            e
            for e in self.events.get(attendee, [])
            if e.start <= window_end and e.end >= window_start
        ]

    async def get_free_busy(self, attendee, window_start, window_end):
        await self._lookup("free_busy", attendee, window_start, window_end)
        return [
            s
            for s in self.segments.get(attendee, [])
            if s.start < window_end and s.end > window_start
        ]


@pytest.fixture(scope="session", autouse=True)
def setup_logfire():
    """Configure Logfire locally so spans are created but never sent."""
    logfire.configure(
        service_name="scheduling_assistant_test",
        send_to_logfire=False,
        console=False,
    )
    yield
    logfire.force_flush()


@pytest.fixture
def provider():
    return FakeCalendarProvider()


@pytest.fixture
def policy():
    return SearchPolicy()


@pytest.fixture
def detector(provider):
    return ConflictDetector(provider)


@pytest.fixture
def clock():
    """Friday 7 March 2025, 08:00 UTC."""
    return lambda: utc_datetime(2025, 3, 7, 8, 0)


@pytest.fixture
def searcher(detector, policy, clock):
    return AlternativeSlotSearcher(detector, policy, clock=clock)


@pytest.fixture
def engine(searcher):
    return ResolutionPolicyEngine(searcher)
