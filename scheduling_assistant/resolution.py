"""Maps resolution directives onto slot searches and formats the outcome."""

from typing import List, Union

import logfire
from loguru import logger

from .schemas import (
    OutcomeKind,
    ResolutionOutcome,
    SchedulingRequest,
    TimeSlotCandidate,
)
from .slot_searcher import AlternativeSlotSearcher
from .strategy_models import ResolutionDirective, SearchStrategy
from .time_utils import TimeZoneLike, describe_window


def format_candidates(
    candidates: List[TimeSlotCandidate], tz: TimeZoneLike = None
) -> str:
    """One line per candidate. Confidence is a display heuristic only."""
    lines = []
    for index, slot in enumerate(candidates, 1):
        line = f"Option {index}: {describe_window(slot.start, slot.end, tz)}"
        if slot.verified:
            line += f" (Confidence: {round(slot.confidence * 100)}%)"
        else:
            line += " (not checked, please verify before booking)"
        lines.append(line)
    return "\n".join(lines)


class ResolutionPolicyEngine:
    """Stateless directive handling on top of the slot searcher."""

    def __init__(self, searcher: AlternativeSlotSearcher, log=None):
        self.searcher = searcher
        self.log = log or logger.bind(component="resolution")

    @property
    def timezone(self) -> str:
        return self.searcher.policy.timezone

    async def resolve(
        self,
        directive: Union[str, ResolutionDirective],
        request: SchedulingRequest,
    ) -> ResolutionOutcome:
        """
        Resolve a conflicting request according to the caller's directive.

        Args:
            directive: offset, next-day, find-alternatives or force
                (the aliases move1hour, tomorrow and findAlternative are accepted)
            request: The request that conflicted

        Returns:
            ResolutionOutcome describing the new window or the alternatives
        """
        directive = ResolutionDirective.parse(directive)
        with logfire.span(
            "resolve {directive}",
            directive=directive.value,
            attendees=len(request.attendees),
        ):
            if directive == ResolutionDirective.FORCE:
                outcome = ResolutionOutcome(
                    kind=OutcomeKind.FORCED,
                    directive=directive,
                    message="Meeting will be scheduled despite conflicts",
                )
            elif directive == ResolutionDirective.OFFSET:
                outcome = await self._shifted(
                    directive,
                    request,
                    SearchStrategy.FIXED_OFFSET,
                    max(len(self.searcher.policy.fallback_offsets), 1),
                    "The suggested time also has conflicts. Please try a different time.",
                )
            elif directive == ResolutionDirective.NEXT_DAY:
                outcome = await self._shifted(
                    directive,
                    request,
                    SearchStrategy.NEXT_DAY,
                    self.searcher.policy.next_day_fallback_results,
                    "Tomorrow also has conflicts. Here are some alternatives:",
                )
            else:
                candidates = await self.searcher.find_alternatives(
                    request,
                    SearchStrategy.BROAD_SEARCH,
                    self.searcher.policy.alternatives_results,
                )
                outcome = self._alternatives(
                    directive,
                    candidates,
                    "Found these alternative time slots when everyone is available:",
                )

        self.log.info(f"Resolved {directive.value} as {outcome.kind.value}")
        return outcome

    async def _shifted(
        self,
        directive: ResolutionDirective,
        request: SchedulingRequest,
        strategy: SearchStrategy,
        max_results: int,
        fallback_message: str,
    ) -> ResolutionOutcome:
        candidates = await self.searcher.find_alternatives(request, strategy, max_results)
        if candidates and candidates[0].verified and candidates[0].strategy == strategy:
            slot = candidates[0]
            return ResolutionOutcome(
                kind=OutcomeKind.RESCHEDULED,
                directive=directive,
                message=f"Successfully rescheduled to {describe_window(slot.start, slot.end, self.timezone)}",
                new_start=slot.start,
                new_end=slot.end,
                warnings=_warnings(candidates),
            )
        return self._alternatives(directive, candidates, fallback_message)

    def _alternatives(
        self,
        directive: ResolutionDirective,
        candidates: List[TimeSlotCandidate],
        message: str,
    ) -> ResolutionOutcome:
        if not candidates:
            return ResolutionOutcome(
                kind=OutcomeKind.NO_ALTERNATIVES_FOUND,
                directive=directive,
                message="No alternative time slots found that work for all attendees.",
            )
        return ResolutionOutcome(
            kind=OutcomeKind.ALTERNATIVES_OFFERED,
            directive=directive,
            message=f"{message}\n{format_candidates(candidates, self.timezone)}",
            candidates=candidates,
            warnings=_warnings(candidates),
        )


def _warnings(candidates: List[TimeSlotCandidate]) -> List[str]:
    unchecked = []
    for slot in candidates:
        for attendee in slot.unchecked_attendees:
            if attendee not in unchecked:
                unchecked.append(attendee)
    return [f"Could not verify availability for {attendee}" for attendee in unchecked]
