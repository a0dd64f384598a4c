import asyncio
from datetime import timedelta

from loguru import logger

from .agent import Message, SchedulingDependencies, run_with_scheduler
from .calendar_service import CalendarService
from .config import get_config
from .response import ResponseType
from .schemas import FreeBusyStatus
from .time_utils import describe_window, localize, utc_now

DEMO_ORGANIZER = "me@company.com"


def setup_demo_data(calendar_service: CalendarService, timezone: str) -> None:
    """Seed rooms and a few meetings so conflicts show up in a fresh database"""
    if calendar_service.get_rooms():
        return

    calendar_service.add_room(
        "room-a@company.com",
        "Conference Room A",
        capacity=10,
        equipment=["projector", "whiteboard", "video_conference"],
    )
    calendar_service.add_room(
        "room-b@company.com",
        "Conference Room B",
        capacity=6,
        equipment=["whiteboard", "video_conference"],
    )
    calendar_service.add_room(
        "room-c@company.com", "Meeting Room C", capacity=4, equipment=["whiteboard"]
    )

    today = localize(utc_now(), timezone).replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    demo_meetings = [
        ("Team Standup", today.replace(hour=9), 30, ["alice@company.com", "bob@company.com"]),
        ("Client Call - Smith", today.replace(hour=14), 60, ["alice@company.com"]),
        ("Planning", tomorrow.replace(hour=10), 90, ["bob@company.com"]),
        ("Quarterly Review", tomorrow.replace(hour=14), 60, ["alice@company.com", "carol@company.com"]),
    ]
    for subject, start, minutes, attendees in demo_meetings:
        calendar_service.create_meeting(
            organizer=DEMO_ORGANIZER,
            subject=subject,
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            attendees=attendees,
        )

    calendar_service.add_availability_block(
        "carol@company.com",
        FreeBusyStatus.OUT_OF_OFFICE,
        today.replace(hour=9),
        today.replace(hour=18),
        note="Offsite",
    )


async def main():
    config = get_config()
    config.db.init_db()
    calendar_service = CalendarService(config.db.session_factory)
    policy = config.search_policy()

    setup_demo_data(calendar_service, policy.timezone)

    deps = SchedulingDependencies.build(
        calendar_service,
        organizer=DEMO_ORGANIZER,
        policy=policy,
        max_concurrency=config.provider_concurrency,
    )

    print("\n===== DEMO CALENDAR =====")
    start = localize(utc_now(), policy.timezone).replace(hour=0, minute=0, second=0, microsecond=0)
    for meeting in calendar_service.get_meetings_in_range(
        DEMO_ORGANIZER, start, start + timedelta(days=2)
    ):
        window = describe_window(meeting.start_utc, meeting.end_utc, policy.timezone)
        print(f"- {meeting.subject}: {window} with {', '.join(meeting.attendee_addresses)}")
    print("=========================\n")

    logger.info("Starting Scheduling Assistant chat interface")
    print("Type 'exit' to quit")
    print("\nExample queries:")
    print("- Is alice@company.com free today at 2 PM?")
    print("- Book a 1 hour sync with alice and bob tomorrow at 10")
    print("- Find a room for 8 people with a projector tomorrow at 3 PM")
    print()

    while True:
        try:
            user_input = input("You> ").strip()
            if not user_input:
                continue

            if user_input.lower() == "exit":
                logger.info("User requested exit")
                break

            deps.conversation_history.append(Message(role="user", content=user_input))
            result = await run_with_scheduler(user_input, deps)
            response = result.output
            deps.conversation_history.append(Message(role="assistant", content=response.message))

            print("\nAssistant:", response.message)

            if response.type == ResponseType.SCHEDULING:
                if response.suggested_slots:
                    print("\nSuggested time slots:")
                    for slot in response.suggested_slots:
                        print(f"- {describe_window(slot.start, slot.end, policy.timezone)}")

                if response.warnings:
                    print("\nWarnings:")
                    for warning in response.warnings:
                        print(f"- {warning}")

                if response.action_taken:
                    print("\nAction taken:", response.action_taken)

            print()

        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
            break
        except Exception as e:
            logger.error(f"Error processing request\n{e}")
            print(f"Error: {str(e)}")


def run():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    run()
