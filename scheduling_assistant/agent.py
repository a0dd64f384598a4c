from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

import logfire
from loguru import logger
from pydantic import BaseModel, Field
from pydantic_ai import Agent, RunContext

from .calendar_service import CalendarService, SqlCalendarProvider
from .config import get_config
from .conflict_detector import ConflictDetector
from .errors import InvalidRequestError, ProviderError
from .resolution import ResolutionPolicyEngine, format_candidates
from .response import BaseResponse, SchedulingResponse
from .schemas import ConflictReport, SchedulingRequest
from .slot_searcher import AlternativeSlotSearcher
from .strategy_models import SearchPolicy, SearchStrategy
from .time_utils import describe_window, ensure_utc, format_duration, localize, utc_now


class Message(BaseModel):
    """Message in conversation history"""

    role: str
    content: str


class SchedulingDependencies(BaseModel):
    """Dependencies for the scheduling agent"""

    calendar_service: CalendarService
    detector: ConflictDetector
    searcher: AlternativeSlotSearcher
    engine: ResolutionPolicyEngine
    organizer: str
    conversation_history: List[Message] = Field(default_factory=list)

    model_config = {"arbitrary_types_allowed": True}

    @property
    def policy(self) -> SearchPolicy:
        return self.searcher.policy

    @classmethod
    def build(
        cls,
        calendar_service: CalendarService,
        organizer: str,
        policy: Optional[SearchPolicy] = None,
        history: Optional[List[Message]] = None,
        clock: Callable[[], datetime] = utc_now,
        max_concurrency: Optional[int] = None,
    ) -> "SchedulingDependencies":
        """Wire the core components on top of a calendar service."""
        policy = policy or SearchPolicy()
        detector = ConflictDetector(
            SqlCalendarProvider(calendar_service),
            timezone=policy.timezone,
            max_concurrency=max_concurrency,
        )
        searcher = AlternativeSlotSearcher(detector, policy, clock=clock)
        return cls(
            calendar_service=calendar_service,
            detector=detector,
            searcher=searcher,
            engine=ResolutionPolicyEngine(searcher),
            organizer=organizer,
            conversation_history=history if history is not None else [],
        )


def get_conversation_context(history: List[Message]) -> str:
    """Extract context from conversation history"""
    if not history:
        return "No previous conversation."

    context_parts = []
    for msg in history[-10:]:
        content = msg.content[:500]
        if len(msg.content) > 500:
            content += "..."
        context_parts.append(f"{msg.role.capitalize()}: {content}")

    return "\n".join(context_parts)


def render_system_prompt(history: List[Message], policy: SearchPolicy, organizer: str) -> str:
    """System prompt with current time, scheduling policy and conversation history"""
    current_time = localize(utc_now(), policy.timezone)
    formatted_time = current_time.strftime("%Y-%m-%d %H:%M:%S %Z")
    context = get_conversation_context(history)

    return f"""
    You are a scheduling assistant that books meetings for {organizer}.
    Current time: {formatted_time} (time zone {policy.timezone})

    {context}

    SCHEDULING PRINCIPLES:
    1. Always check conflicts for every attendee before booking (schedule_meeting does this)
    2. Business hours are {policy.business_start_hour}:00-{policy.business_end_hour}:00
    3. When a time conflicts, offer the user a choice:
       * move it by an hour (resolution "offset")
       * move it to the same time tomorrow (resolution "next-day")
       * search for alternatives (resolution "find-alternatives")
       * book it anyway (resolution "force", or schedule_meeting with force=true)
    4. If availability could not be verified for someone, say so explicitly

    TOOLS:
    - check_conflicts: conflicts for a proposed time
    - resolve_conflict: apply one of the resolutions above
    - find_alternative_times / suggest_meeting_times: propose open slots
    - schedule_meeting, update_meeting, cancel_meeting, get_my_calendar
    - find_available_rooms: rooms free for a window, by capacity and equipment

    CONFIDENCE:
    - Slot confidence is a fixed ranking heuristic, never present it as a probability
    - Slots marked as not checked must be re-checked before booking

    RESPONSE FORMATTING:
    - For simple interactions: return BaseResponse with a message
    - For calendar operations: return SchedulingResponse with the message, the
      action taken, conflicts and suggested slots where relevant
    """


scheduling_agent = Agent(
    None,  # model is chosen per run, see run_with_scheduler
    deps_type=SchedulingDependencies,
    output_type=Union[BaseResponse, SchedulingResponse],
)


@scheduling_agent.system_prompt
def system_prompt(ctx: RunContext[SchedulingDependencies]) -> str:
    deps = ctx.deps
    return render_system_prompt(deps.conversation_history, deps.policy, deps.organizer)


def _as_utc(dt: datetime, deps: SchedulingDependencies) -> datetime:
    # Model output is usually naive and meant in the user's zone
    return ensure_utc(localize(dt, deps.policy.timezone))


def _failure(message: str, action: str) -> SchedulingResponse:
    return SchedulingResponse(success=False, message=message, action_taken=action)


def _describe_conflicts(report: ConflictReport) -> str:
    lines = [f"- {c.attendee}: {c.detail} ({c.window_description})" for c in report.conflicts]
    lines.extend(f"- {w}" for w in report.warnings)
    return "\n".join(lines)


@scheduling_agent.tool
async def check_conflicts(
    ctx: RunContext[SchedulingDependencies],
    attendees: List[str],
    start_time: datetime,
    duration: int = 60,
) -> SchedulingResponse:
    """Check whether a proposed time works for every attendee.

    Args:
        attendees: Attendee email addresses
        start_time: Proposed start time
        duration: Duration in minutes (default: 60)
    """
    deps = ctx.deps
    try:
        request = SchedulingRequest.create(
            attendees, _as_utc(start_time, deps), duration_minutes=duration
        )
    except InvalidRequestError as e:
        return _failure(str(e), "Failed: Invalid request")

    report = await deps.detector.detect(request)
    window = describe_window(request.proposed_start, request.proposed_end, deps.policy.timezone)

    if report.has_conflicts:
        message = f"Scheduling conflict detected for {window}:\n{_describe_conflicts(report)}"
    elif report.unchecked_attendees:
        message = f"No conflicts found for {window}, but:\n{_describe_conflicts(report)}"
    else:
        message = f"Everyone is available for {window}."

    return SchedulingResponse(
        message=message,
        action_taken=f"Checked conflicts for {window}",
        conflicts=report.conflicts or None,
        warnings=report.warnings or None,
    )


@scheduling_agent.tool
async def resolve_conflict(
    ctx: RunContext[SchedulingDependencies],
    attendees: List[str],
    start_time: datetime,
    resolution: str,
    duration: int = 60,
) -> SchedulingResponse:
    """Resolve a conflicting time.

    Args:
        attendees: Attendee email addresses
        start_time: The conflicting start time
        resolution: One of offset, next-day, find-alternatives, force
        duration: Duration in minutes (default: 60)
    """
    deps = ctx.deps
    try:
        request = SchedulingRequest.create(
            attendees, _as_utc(start_time, deps), duration_minutes=duration
        )
        outcome = await deps.engine.resolve(resolution, request)
    except InvalidRequestError as e:
        return _failure(str(e), "Failed: Invalid request")

    return SchedulingResponse(
        message=outcome.message,
        action_taken=f"Resolved conflict: {outcome.directive.value}",
        suggested_slots=outcome.candidates or None,
        outcome=outcome.kind,
        warnings=outcome.warnings or None,
        details=(
            {"new_start": outcome.new_start.isoformat(), "new_end": outcome.new_end.isoformat()}
            if outcome.new_start
            else None
        ),
    )


@scheduling_agent.tool
async def find_alternative_times(
    ctx: RunContext[SchedulingDependencies],
    attendees: List[str],
    duration: int = 60,
    preferred_start_time: Optional[datetime] = None,
    max_results: int = 5,
) -> SchedulingResponse:
    """Find times when every attendee is available.

    Args:
        attendees: Attendee email addresses
        duration: Meeting duration in minutes
        preferred_start_time: Search from this day on; when omitted the best upcoming times are suggested
        max_results: Maximum number of slots to return
    """
    deps = ctx.deps
    try:
        if preferred_start_time is None:
            slots = await deps.searcher.suggest_times(attendees, duration, max_results)
        else:
            request = SchedulingRequest.create(
                attendees, _as_utc(preferred_start_time, deps), duration_minutes=duration
            )
            slots = await deps.searcher.find_alternatives(
                request, SearchStrategy.BROAD_SEARCH, max_results
            )
    except InvalidRequestError as e:
        return _failure(str(e), "Failed: Invalid request")

    if not slots:
        return SchedulingResponse(
            message="No alternative time slots found that work for all attendees.",
            action_taken="Searched for alternatives",
        )
    return SchedulingResponse(
        message=f"Alternative meeting times found:\n{format_candidates(slots, deps.policy.timezone)}",
        action_taken=f"Found {len(slots)} alternative slots",
        suggested_slots=slots,
    )


@scheduling_agent.tool
async def suggest_meeting_times(
    ctx: RunContext[SchedulingDependencies],
    attendees: List[str],
    duration: int = 60,
) -> SchedulingResponse:
    """Suggest good upcoming meeting times (mid-morning and afternoon on business days).

    Args:
        attendees: Attendee email addresses
        duration: Meeting duration in minutes
    """
    return await find_alternative_times(ctx, attendees, duration, None, 3)


@scheduling_agent.tool
async def schedule_meeting(
    ctx: RunContext[SchedulingDependencies],
    subject: str,
    attendees: List[str],
    start_time: datetime,
    duration: int = 60,
    description: Optional[str] = None,
    location: Optional[str] = None,
    room: Optional[str] = None,
    force: bool = False,
) -> SchedulingResponse:
    """
    Schedule a meeting after checking every attendee for conflicts.

    Args:
        subject: Subject of the meeting
        attendees: Attendee email addresses
        start_time: Start time of the meeting
        duration: Duration in minutes (default: 60)
        description: Optional description
        location: Optional location
        room: Optional room address to book
        force: Book even if there are conflicts

    Returns:
        SchedulingResponse with the booking or the conflicts found
    """
    deps = ctx.deps
    try:
        request = SchedulingRequest.create(
            attendees + ([room] if room else []),
            _as_utc(start_time, deps),
            duration_minutes=duration,
            subject=subject,
            description=description,
            location=location,
        )
    except InvalidRequestError as e:
        return _failure(str(e), "Failed: Invalid request")

    report = await deps.detector.detect(request)
    if report.has_conflicts and not force:
        return SchedulingResponse(
            success=False,
            message=(
                "Scheduling conflict detected!\n\n"
                f"Conflicts:\n{_describe_conflicts(report)}\n\n"
                "I can move it by an hour, move it to tomorrow, find alternatives, "
                "or book it anyway."
            ),
            action_taken="Failed: Conflicts detected",
            conflicts=report.conflicts,
            warnings=report.warnings or None,
        )

    try:
        meeting = deps.calendar_service.create_meeting(
            organizer=deps.organizer,
            subject=subject,
            start_time=request.proposed_start,
            end_time=request.proposed_end,
            attendees=attendees,
            description=description,
            location=location,
            room=room,
        )
    except ProviderError as e:
        return _failure(f"Failed to schedule '{subject}': {e}", "Failed: Could not book")

    window = describe_window(request.proposed_start, request.proposed_end, deps.policy.timezone)
    message = f"Successfully scheduled '{subject}' for {window} ({format_duration(duration)})."
    if report.has_conflicts:
        message += f" Booked despite {len(report.conflicts)} conflicts."
    if report.warnings:
        message += "\n" + "\n".join(report.warnings)

    return SchedulingResponse(
        message=message,
        action_taken=f"Scheduled: '{subject}'",
        conflicts=report.conflicts or None,
        warnings=report.warnings or None,
        details={"meeting_id": meeting.id},
    )


@scheduling_agent.tool
async def update_meeting(
    ctx: RunContext[SchedulingDependencies],
    meeting_id: int,
    subject: Optional[str] = None,
    start_time: Optional[datetime] = None,
    duration: Optional[int] = None,
    attendees: Optional[List[str]] = None,
    location: Optional[str] = None,
) -> SchedulingResponse:
    """Update an existing meeting.

    Args:
        meeting_id: ID of the meeting to update
        subject: New subject
        start_time: New start time
        duration: New duration in minutes (keeps the old duration when omitted)
        attendees: New attendee list
        location: New location
    """
    deps = ctx.deps
    try:
        existing = deps.calendar_service.get_meeting(meeting_id)
    except ProviderError as e:
        return _failure(f"Failed to load meeting {meeting_id}: {e}", "Failed: Could not update")
    if not existing:
        return _failure(f"Meeting {meeting_id} not found.", "Failed: Meeting not found")

    start = _as_utc(start_time, deps) if start_time else existing.start_utc
    minutes = duration or int((existing.end_utc - existing.start_utc).total_seconds() // 60)
    if minutes <= 0:
        return _failure("Duration must be positive.", "Failed: Invalid request")

    try:
        meeting = deps.calendar_service.update_meeting(
            meeting_id,
            subject=subject,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            attendees=attendees,
            location=location,
        )
    except ProviderError as e:
        return _failure(f"Failed to update meeting {meeting_id}: {e}", "Failed: Could not update")

    window = describe_window(meeting.start_utc, meeting.end_utc, deps.policy.timezone)
    return SchedulingResponse(
        message=f"Updated '{meeting.subject}' to {window}.",
        action_taken=f"Updated: {meeting.subject}",
        details={"meeting_id": meeting.id},
    )


@scheduling_agent.tool
async def cancel_meeting(
    ctx: RunContext[SchedulingDependencies], meeting_id: int
) -> SchedulingResponse:
    """Cancel a meeting by ID"""
    deps = ctx.deps
    try:
        meeting = deps.calendar_service.get_meeting(meeting_id)
        cancelled = bool(meeting) and deps.calendar_service.cancel_meeting(meeting_id)
    except ProviderError as e:
        return _failure(f"Failed to cancel meeting {meeting_id}: {e}", "Failed: Could not cancel")
    if not cancelled:
        return _failure(
            f"Failed to cancel meeting {meeting_id}: Meeting not found.",
            "Failed: Meeting not found",
        )

    window = describe_window(meeting.start_utc, meeting.end_utc, deps.policy.timezone)
    return SchedulingResponse(
        message=f"Successfully cancelled '{meeting.subject}' scheduled for {window}.",
        action_taken=f"Cancelled: {meeting.subject}",
    )


@scheduling_agent.tool
async def find_available_rooms(
    ctx: RunContext[SchedulingDependencies],
    start_time: datetime,
    duration: int = 60,
    capacity: Optional[int] = None,
    equipment: Optional[List[str]] = None,
) -> SchedulingResponse:
    """Find meeting rooms that are free for a window.

    Args:
        start_time: Start of the window
        duration: Duration in minutes
        capacity: Minimum number of seats
        equipment: Required equipment, e.g. projector, whiteboard, video_conference
    """
    deps = ctx.deps
    start = _as_utc(start_time, deps)
    try:
        rooms = deps.calendar_service.find_available_rooms(
            start, start + timedelta(minutes=duration), capacity, equipment
        )
    except ProviderError as e:
        return _failure(f"Failed to look up rooms: {e}", "Failed: Room lookup")
    if not rooms:
        return SchedulingResponse(
            message="No rooms are available for that time.",
            action_taken="Searched rooms",
        )

    lines = [
        f"- {r.display_name} ({r.address}), capacity {r.capacity or 'unknown'}"
        + (f", {', '.join(r.equipment_list)}" if r.equipment_list else "")
        for r in rooms
    ]
    return SchedulingResponse(
        message="Available rooms:\n" + "\n".join(lines),
        action_taken=f"Found {len(rooms)} rooms",
        details={"rooms": [r.address for r in rooms]},
    )


@scheduling_agent.tool
async def get_my_calendar(
    ctx: RunContext[SchedulingDependencies],
    start_time: datetime,
    end_time: datetime,
) -> SchedulingResponse:
    """Get the organizer's meetings between two times.

    Args:
        start_time: Start of the range
        end_time: End of the range
    """
    deps = ctx.deps
    try:
        meetings = deps.calendar_service.get_meetings_in_range(
            deps.organizer, _as_utc(start_time, deps), _as_utc(end_time, deps)
        )
    except ProviderError as e:
        return _failure(f"Failed to get calendar: {e}", "Failed: Calendar lookup")
    if not meetings:
        return SchedulingResponse(
            message="No meetings found in that range.",
            action_taken="No meetings found",
        )

    tz = deps.policy.timezone
    lines = [
        f"- {m.subject}: {describe_window(m.start_utc, m.end_utc, tz)} (ID: {m.id})"
        for m in meetings
    ]
    return SchedulingResponse(
        message=f"Found {len(meetings)} meetings:\n" + "\n".join(lines),
        action_taken=f"Found {len(meetings)} meetings",
    )


async def run_with_scheduler(
    prompt: str,
    deps: SchedulingDependencies,
    model: Optional[str] = None,
):
    """Run the agent for one user turn"""
    config = get_config()
    if not config.is_using_real_llm and model is None:
        logger.warning("No OpenAI API key found, model requests will fail")

    with logfire.span("scheduling_agent run", prompt=prompt):
        result = await scheduling_agent.run(
            prompt, deps=deps, model=model or config.model_name
        )
    logfire.info("scheduling_agent response", response=result.output)
    return result
