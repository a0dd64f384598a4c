import asyncio

import pytest

from scheduling_assistant.errors import InvalidRequestError
from scheduling_assistant.schemas import SchedulingRequest
from scheduling_assistant.slot_searcher import AlternativeSlotSearcher
from scheduling_assistant.strategy_models import SearchPolicy, SearchStrategy
from tests.conftest import utc_datetime


def make_request(attendees=("a@x.com", "b@x.com"), start=None, minutes=60):
    start = start or utc_datetime(2025, 3, 3, 14)
    return SchedulingRequest.create(list(attendees), start, duration_minutes=minutes)


def book_whole_week(provider, attendee):
    for day in range(3, 10):
        provider.add_event(attendee, utc_datetime(2025, 3, day, 9), utc_datetime(2025, 3, day, 18))


@pytest.mark.asyncio
async def test_offset_returns_verified_shift(provider, searcher):
    provider.add_event("a@x.com", utc_datetime(2025, 3, 3, 14), utc_datetime(2025, 3, 3, 15))

    candidates = await searcher.find_alternatives(make_request(), SearchStrategy.FIXED_OFFSET, 3)

    assert len(candidates) == 1
    slot = candidates[0]
    assert (slot.start, slot.end) == (utc_datetime(2025, 3, 3, 15), utc_datetime(2025, 3, 3, 16))
    assert slot.verified
    assert slot.confidence == 0.95
    assert slot.strategy == SearchStrategy.FIXED_OFFSET


@pytest.mark.asyncio
async def test_offset_conflict_offers_unverified_fallbacks(provider, searcher):
    provider.add_event("a@x.com", utc_datetime(2025, 3, 3, 14), utc_datetime(2025, 3, 3, 16))

    candidates = await searcher.find_alternatives(make_request(), SearchStrategy.FIXED_OFFSET, 3)

    assert [c.start for c in candidates] == [
        utc_datetime(2025, 3, 3, 16),
        utc_datetime(2025, 3, 3, 17),
    ]
    assert all(not c.verified for c in candidates)
    assert all(c.confidence == 0.25 for c in candidates)


@pytest.mark.asyncio
async def test_next_day_is_literal_calendar_day(provider, searcher):
    friday = utc_datetime(2025, 3, 7, 14)

    candidates = await searcher.find_alternatives(
        make_request(start=friday), SearchStrategy.NEXT_DAY, 3
    )

    assert len(candidates) == 1
    assert candidates[0].start == utc_datetime(2025, 3, 8, 14)
    assert candidates[0].strategy == SearchStrategy.NEXT_DAY


@pytest.mark.asyncio
async def test_next_day_conflict_falls_back_to_broad_search(provider, detector, searcher):
    provider.add_event("a@x.com", utc_datetime(2025, 3, 4, 14), utc_datetime(2025, 3, 4, 15))
    provider.add_event("b@x.com", utc_datetime(2025, 3, 3, 9), utc_datetime(2025, 3, 3, 10))

    candidates = await searcher.find_alternatives(make_request(), SearchStrategy.NEXT_DAY, 3)

    assert [c.start for c in candidates] == [
        utc_datetime(2025, 3, 3, 10),
        utc_datetime(2025, 3, 3, 11),
        utc_datetime(2025, 3, 3, 12),
    ]
    assert all(c.strategy == SearchStrategy.BROAD_SEARCH for c in candidates)


@pytest.mark.asyncio
async def test_broad_search_is_chronological_and_conflict_free(provider, detector, searcher):
    provider.add_event("a@x.com", utc_datetime(2025, 3, 3, 9), utc_datetime(2025, 3, 3, 12))
    provider.add_event("b@x.com", utc_datetime(2025, 3, 3, 13), utc_datetime(2025, 3, 3, 17))
    request = make_request()

    candidates = await searcher.find_alternatives(request, SearchStrategy.BROAD_SEARCH, 5)

    assert [c.start for c in candidates] == [
        utc_datetime(2025, 3, 3, 12),
        utc_datetime(2025, 3, 3, 17),
        utc_datetime(2025, 3, 4, 9),
        utc_datetime(2025, 3, 4, 10),
        utc_datetime(2025, 3, 4, 11),
    ]
    for slot in candidates:
        assert slot.confidence == 0.75
        report = await detector.detect(request.with_window(slot.start, slot.end))
        assert not report.has_conflicts


@pytest.mark.asyncio
@pytest.mark.parametrize("max_results", [1, 2, 5])
async def test_broad_search_respects_max_results(searcher, max_results):
    candidates = await searcher.find_alternatives(
        make_request(), SearchStrategy.BROAD_SEARCH, max_results
    )

    assert len(candidates) == max_results


@pytest.mark.asyncio
async def test_broad_search_keeps_slots_inside_business_hours(searcher):
    candidates = await searcher.find_alternatives(
        make_request(minutes=90), SearchStrategy.BROAD_SEARCH, 10
    )

    for slot in candidates:
        assert slot.duration_minutes == 90
        assert slot.start.hour >= 9
        assert (slot.end.hour, slot.end.minute) <= (18, 0)


@pytest.mark.asyncio
async def test_broad_search_with_full_calendar_finds_nothing(provider, searcher):
    book_whole_week(provider, "a@x.com")

    candidates = await searcher.find_alternatives(make_request(), SearchStrategy.BROAD_SEARCH, 5)

    assert candidates == []


@pytest.mark.asyncio
async def test_unchecked_attendees_are_carried_on_candidates(provider, searcher):
    provider.failing.add("b@x.com")

    candidates = await searcher.find_alternatives(make_request(), SearchStrategy.BROAD_SEARCH, 2)

    assert len(candidates) == 2
    assert all(c.unchecked_attendees == ["b@x.com"] for c in candidates)


@pytest.mark.asyncio
async def test_preferred_hours_on_business_days(provider, searcher):
    provider.add_event("a@x.com", utc_datetime(2025, 3, 7, 10), utc_datetime(2025, 3, 7, 11))

    candidates = await searcher.suggest_times(["a@x.com"], duration_minutes=60)

    # Friday afternoon, then the weekend is skipped
    assert [c.start for c in candidates] == [
        utc_datetime(2025, 3, 7, 14),
        utc_datetime(2025, 3, 7, 16),
        utc_datetime(2025, 3, 10, 10),
    ]
    assert all(c.confidence == 0.9 for c in candidates)
    assert all(c.strategy == SearchStrategy.PREFERRED_HOURS for c in candidates)


@pytest.mark.asyncio
async def test_preferred_hours_skip_the_past(detector):
    searcher = AlternativeSlotSearcher(detector, clock=lambda: utc_datetime(2025, 3, 7, 15))

    candidates = await searcher.suggest_times(["a@x.com"])

    assert [c.start for c in candidates] == [
        utc_datetime(2025, 3, 7, 16),
        utc_datetime(2025, 3, 10, 10),
        utc_datetime(2025, 3, 10, 14),
    ]


@pytest.mark.asyncio
async def test_preferred_hours_are_capped(searcher):
    candidates = await searcher.suggest_times(["a@x.com"], max_results=10)

    assert len(candidates) == 3


@pytest.mark.asyncio
async def test_timeout_returns_partial_results(provider, detector):
    provider.delays["a@x.com"] = 0.1
    searcher = AlternativeSlotSearcher(detector)

    candidates = await searcher.find_alternatives(
        make_request(), SearchStrategy.BROAD_SEARCH, 5, timeout=0.5
    )

    assert len(candidates) < 5
    assert all(c.verified for c in candidates)


@pytest.mark.asyncio
async def test_policy_timeout_is_used_by_default(provider, detector):
    provider.delays["a@x.com"] = 0.1
    searcher = AlternativeSlotSearcher(detector, SearchPolicy(search_timeout=0.3))

    candidates = await searcher.find_alternatives(make_request(), SearchStrategy.BROAD_SEARCH, 5)

    assert len(candidates) < 5


@pytest.mark.asyncio
async def test_cancelled_search_stops(provider, searcher):
    cancel = asyncio.Event()
    cancel.set()

    candidates = await searcher.find_alternatives(
        make_request(), SearchStrategy.BROAD_SEARCH, 5, cancel_event=cancel
    )

    assert candidates == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_invalid_max_results(searcher):
    with pytest.raises(InvalidRequestError):
        await searcher.find_alternatives(make_request(), SearchStrategy.BROAD_SEARCH, 0)


@pytest.mark.asyncio
async def test_search_needs_attendees(provider, searcher):
    with pytest.raises(InvalidRequestError):
        await searcher.find_alternatives(make_request(attendees=[]), SearchStrategy.BROAD_SEARCH, 3)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_broad_search_finds_window_between_hour_boundaries(provider, detector):
    provider.add_event("a@x.com", utc_datetime(2025, 3, 3, 9), utc_datetime(2025, 3, 3, 10))
    provider.add_event("a@x.com", utc_datetime(2025, 3, 3, 12), utc_datetime(2025, 3, 3, 18))
    searcher = AlternativeSlotSearcher(detector, SearchPolicy(horizon_days=1))

    candidates = await searcher.find_alternatives(
        make_request(attendees=["a@x.com"], minutes=120), SearchStrategy.BROAD_SEARCH, 5
    )

    assert [(c.start, c.end) for c in candidates] == [
        (utc_datetime(2025, 3, 3, 10), utc_datetime(2025, 3, 3, 12)),
    ]


@pytest.mark.asyncio
async def test_broad_search_tries_each_hour_for_short_meetings(detector):
    searcher = AlternativeSlotSearcher(detector, SearchPolicy(horizon_days=1))

    candidates = await searcher.find_alternatives(
        make_request(minutes=30), SearchStrategy.BROAD_SEARCH, 20
    )

    assert len(candidates) == 9
    assert all(c.start.minute == 0 for c in candidates)


@pytest.mark.asyncio
async def test_unknown_strategy_is_rejected(provider, searcher):
    with pytest.raises(InvalidRequestError):
        await searcher.find_alternatives(make_request(), "sideways", 3)
    assert provider.calls == []
