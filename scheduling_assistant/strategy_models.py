"""
Pydantic models for conflict resolution strategies and search policy.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import InvalidRequestError


class SearchStrategy(str, Enum):
    """How the slot searcher looks for alternatives."""

    FIXED_OFFSET = "fixed-offset"
    NEXT_DAY = "next-day"
    BROAD_SEARCH = "broad-search"
    PREFERRED_HOURS = "preferred-hours"


class ResolutionDirective(str, Enum):
    """What the caller wants done about a conflicting request."""

    OFFSET = "offset"
    NEXT_DAY = "next-day"
    FIND_ALTERNATIVES = "find-alternatives"
    FORCE = "force"

    @classmethod
    def parse(cls, value: "str | ResolutionDirective") -> "ResolutionDirective":
        """Accept canonical values and the names older chat clients send."""
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        directive = _DIRECTIVE_ALIASES.get(key) or _DIRECTIVE_ALIASES.get(key.lower())
        if directive is None:
            raise InvalidRequestError(f"Unknown resolution directive: {value!r}")
        return directive


_DIRECTIVE_ALIASES: Dict[str, ResolutionDirective] = {
    **{d.value: d for d in ResolutionDirective},
    "move1hour": ResolutionDirective.OFFSET,
    "tomorrow": ResolutionDirective.NEXT_DAY,
    "findalternative": ResolutionDirective.FIND_ALTERNATIVES,
    "findAlternative": ResolutionDirective.FIND_ALTERNATIVES,
}


# Fixed presentation buckets. These are NOT probabilities and are not derived
# from calendar history; they only rank how closely a slot follows the
# request or the preferred-hours heuristic.
CONFIDENCE_BUCKETS: Dict[str, float] = {
    "shifted": 0.95,
    "preferred-hours": 0.9,
    "broad-search": 0.75,
    "unverified": 0.25,
}


class SearchPolicy(BaseModel):
    """
    Tunables for the slot searcher.

    Example:
    ```python
    policy = SearchPolicy(
        timezone="Europe/London",
        business_start_hour=8,
        business_end_hour=17,
        preferred_hours=[9, 13],
    )
    ```
    """

    timezone: str = Field("UTC", description="IANA zone business hours are expressed in")
    business_start_hour: int = Field(9, ge=0, le=23)
    business_end_hour: int = Field(18, ge=1, le=24)
    horizon_days: int = Field(
        7, ge=1, description="Days searched by broad search, starting at the proposed day"
    )
    offset_minutes: int = Field(60, gt=0, description="Shift used by the offset directive")
    fallback_offsets: List[int] = Field(
        default_factory=lambda: [120, 180],
        description="Unverified shifts offered when the offset window also conflicts",
    )
    preferred_hours: List[int] = Field(
        default_factory=lambda: [10, 14, 16],
        description="Start hours tried, in order, by the preferred-hours heuristic",
    )
    preferred_days: int = Field(5, ge=1, description="Calendar days scanned for preferred hours")
    preferred_limit: int = Field(3, ge=1)
    next_day_fallback_results: int = Field(3, ge=1)
    alternatives_results: int = Field(5, ge=1)
    search_timeout: Optional[float] = Field(
        None, gt=0, description="Seconds before a search returns what it has"
    )

    @field_validator("preferred_hours")
    @classmethod
    def check_preferred_hours(cls, hours: List[int]) -> List[int]:
        if any(h < 0 or h > 23 for h in hours):
            raise ValueError("preferred hours must be between 0 and 23")
        return hours

    @model_validator(mode="after")
    def check_business_hours(self) -> "SearchPolicy":
        if self.business_start_hour >= self.business_end_hour:
            raise ValueError("business_start_hour must be before business_end_hour")
        return self
