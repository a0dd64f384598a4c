"""Response types for the scheduling agent."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .schemas import Conflict, OutcomeKind, TimeSlotCandidate


class ResponseType(str, Enum):
    """Type of response from the scheduling agent."""

    BASE = "base"
    SCHEDULING = "scheduling"


class BaseResponse(BaseModel):
    """Base response for simple interactions that don't touch the calendar."""

    type: ResponseType = ResponseType.BASE
    message: str = Field(description="Natural language response to the user")


class SchedulingResponse(BaseResponse):
    """Scheduling-specific response from the agent."""

    type: ResponseType = ResponseType.SCHEDULING
    success: bool = True
    action_taken: Optional[str] = Field(
        default=None, description="Description of any actions taken"
    )
    conflicts: Optional[List[Conflict]] = None
    suggested_slots: Optional[List[TimeSlotCandidate]] = Field(
        default=None,
        description="Alternative slots; confidence is a fixed display heuristic, not a probability",
    )
    outcome: Optional[OutcomeKind] = None
    warnings: Optional[List[str]] = None
    details: Optional[Dict[str, Any]] = None
