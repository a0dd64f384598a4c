"""Search for alternative meeting slots when a proposed window conflicts.

Confidence values attached to candidates come from ``CONFIDENCE_BUCKETS``.
They are fixed per search tier and exist for display ordering only; they are
not probabilities and are never computed from calendar history.
"""

import asyncio
from datetime import datetime, time, timedelta
from typing import Callable, List, Optional

from loguru import logger

from .conflict_detector import ConflictDetector
from .errors import InvalidRequestError
from .schemas import ConflictReport, SchedulingRequest, TimeSlotCandidate
from .strategy_models import CONFIDENCE_BUCKETS, SearchPolicy, SearchStrategy
from .time_utils import (
    ensure_utc,
    generate_hourly_slots,
    is_business_day,
    local_date,
    localize,
    shift_days,
    utc_now,
)


class AlternativeSlotSearcher:
    """Finds conflict-free windows for all attendees of a request."""

    def __init__(
        self,
        detector: ConflictDetector,
        policy: Optional[SearchPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        log=None,
    ):
        """Initialize the searcher.

        Args:
            detector: Conflict detector used to verify every candidate
            policy: Search tunables (business hours, horizon, preferred hours)
            clock: Returns the current UTC time; used by the preferred-hours search
            log: Logger to report through (defaults to a bound loguru logger)
        """
        self.detector = detector
        self.policy = policy or SearchPolicy()
        self.clock = clock
        self.log = log or logger.bind(component="slot_searcher")

    async def find_alternatives(
        self,
        request: SchedulingRequest,
        strategy: SearchStrategy,
        max_results: int,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[TimeSlotCandidate]:
        """
        Search for alternative slots using one strategy.

        Args:
            request: The conflicting request (attendees and duration are reused)
            strategy: Which search to run
            max_results: Upper bound on returned candidates
            timeout: Seconds after which the candidates found so far are returned
                (defaults to the policy's search_timeout)
            cancel_event: When set, the search stops and returns what it has

        Returns:
            Candidates best-first, at most ``max_results``. Empty when nothing fits.
        """
        try:
            strategy = SearchStrategy(strategy)
        except ValueError as e:
            raise InvalidRequestError(f"Unknown search strategy: {strategy!r}") from e
        if max_results < 1:
            raise InvalidRequestError("max_results must be at least 1")
        if not request.attendees:
            raise InvalidRequestError("At least one attendee is required to search")

        if timeout is None:
            timeout = self.policy.search_timeout

        found: List[TimeSlotCandidate] = []
        search = self._run(strategy, request, max_results, found, cancel_event)
        try:
            if timeout is None:
                await search
            else:
                await asyncio.wait_for(search, timeout)
        except asyncio.TimeoutError:
            self.log.warning(
                f"{strategy.value} search timed out after {timeout}s "
                f"with {len(found)} candidates"
            )

        self.log.info(f"{strategy.value} search returned {len(found)} candidates")
        return found[:max_results]

    async def suggest_times(
        self,
        attendees: List[str],
        duration_minutes: int = 60,
        max_results: int = 3,
        **kwargs,
    ) -> List[TimeSlotCandidate]:
        """Proactive "when could we meet" suggestions using preferred hours."""
        request = SchedulingRequest.create(
            attendees, self.clock(), duration_minutes=duration_minutes
        )
        return await self.find_alternatives(
            request, SearchStrategy.PREFERRED_HOURS, max_results, **kwargs
        )

    async def _run(self, strategy, request, max_results, found, cancel_event):
        if strategy == SearchStrategy.FIXED_OFFSET:
            await self._fixed_offset(request, max_results, found)
        elif strategy == SearchStrategy.NEXT_DAY:
            await self._next_day(request, max_results, found, cancel_event)
        elif strategy == SearchStrategy.BROAD_SEARCH:
            await self._broad_search(request, max_results, found, cancel_event)
        else:
            await self._preferred_hours(request, max_results, found, cancel_event)

    async def _fixed_offset(self, request, max_results, found):
        shifted = request.shifted(timedelta(minutes=self.policy.offset_minutes))
        report = await self.detector.detect(shifted)
        if not report.has_conflicts:
            found.append(
                self._candidate(shifted, "shifted", SearchStrategy.FIXED_OFFSET, report)
            )
            return

        # Suggestions only: these windows are not checked and must be
        # re-verified before booking.
        for offset in self.policy.fallback_offsets[:max_results]:
            moved = request.shifted(timedelta(minutes=offset))
            found.append(
                self._candidate(
                    moved, "unverified", SearchStrategy.FIXED_OFFSET, verified=False
                )
            )

    async def _next_day(self, request, max_results, found, cancel_event):
        # Literal next calendar day; weekends are not skipped here.
        start = shift_days(request.proposed_start, 1, self.policy.timezone)
        tomorrow = request.with_window(start, start + request.duration)
        report = await self.detector.detect(tomorrow)
        if not report.has_conflicts:
            found.append(
                self._candidate(tomorrow, "shifted", SearchStrategy.NEXT_DAY, report)
            )
            return

        self.log.debug("Next day also conflicts, falling back to broad search")
        await self._broad_search(request, max_results, found, cancel_event)

    async def _broad_search(self, request, max_results, found, cancel_event):
        policy = self.policy
        first_day = local_date(request.proposed_start, policy.timezone)

        for day_offset in range(policy.horizon_days):
            day = first_day + timedelta(days=day_offset)
            slots = generate_hourly_slots(
                day,
                policy.business_start_hour,
                policy.business_end_hour,
                request.duration_minutes,
                policy.timezone,
            )
            for start, end in slots:
                if len(found) >= max_results or _is_cancelled(cancel_event):
                    return
                candidate_request = request.with_window(start, end)
                report = await self.detector.detect(candidate_request)
                if not report.has_conflicts:
                    found.append(
                        self._candidate(
                            candidate_request,
                            "broad-search",
                            SearchStrategy.BROAD_SEARCH,
                            report,
                        )
                    )

    async def _preferred_hours(self, request, max_results, found, cancel_event):
        policy = self.policy
        now = ensure_utc(self.clock())
        today = local_date(now, policy.timezone)
        limit = min(max_results, policy.preferred_limit)

        for day_offset in range(policy.preferred_days):
            day = today + timedelta(days=day_offset)
            if not is_business_day(day):
                continue
            for hour in policy.preferred_hours:
                if len(found) >= limit or _is_cancelled(cancel_event):
                    return
                start = ensure_utc(localize(datetime.combine(day, time(hour)), policy.timezone))
                if start < now:
                    continue
                candidate_request = request.with_window(start, start + request.duration)
                report = await self.detector.detect(candidate_request)
                if not report.has_conflicts:
                    found.append(
                        self._candidate(
                            candidate_request,
                            "preferred-hours",
                            SearchStrategy.PREFERRED_HOURS,
                            report,
                        )
                    )

    @staticmethod
    def _candidate(
        request: SchedulingRequest,
        bucket: str,
        strategy: SearchStrategy,
        report: Optional[ConflictReport] = None,
        verified: bool = True,
    ) -> TimeSlotCandidate:
        return TimeSlotCandidate(
            start=request.proposed_start,
            end=request.proposed_end,
            confidence=CONFIDENCE_BUCKETS[bucket],
            verified=verified,
            strategy=strategy,
            unchecked_attendees=list(report.unchecked_attendees) if report else [],
        )


def _is_cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()
