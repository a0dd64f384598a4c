"""Scheduling assistant package."""

from .conflict_detector import ConflictDetector
from .errors import InvalidRequestError, ProviderError, ProviderUnavailable
from .provider import CalendarProvider
from .resolution import ResolutionPolicyEngine
from .schemas import (
    CalendarEvent,
    Conflict,
    ConflictKind,
    ConflictReport,
    FreeBusySegment,
    FreeBusyStatus,
    OutcomeKind,
    ResolutionOutcome,
    SchedulingRequest,
    TimeSlotCandidate,
)
from .slot_searcher import AlternativeSlotSearcher
from .strategy_models import ResolutionDirective, SearchPolicy, SearchStrategy

__all__ = [
    "AlternativeSlotSearcher",
    "CalendarEvent",
    "CalendarProvider",
    "Conflict",
    "ConflictDetector",
    "ConflictKind",
    "ConflictReport",
    "FreeBusySegment",
    "FreeBusyStatus",
    "InvalidRequestError",
    "OutcomeKind",
    "ProviderError",
    "ProviderUnavailable",
    "ResolutionDirective",
    "ResolutionOutcome",
    "ResolutionPolicyEngine",
    "SchedulingRequest",
    "SearchPolicy",
    "SearchStrategy",
    "TimeSlotCandidate",
]
