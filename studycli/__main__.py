"""CLI interface for Study Core.

Usage:
    python -m studycli add DECK CARD [CARD ...]   Enroll cards in a deck
    python -m studycli due DECK                   Show which cards are due
    python -m studycli review DECK                Run a study session
    python -m studycli stats DECK                 Show deck statistics
"""

import argparse
import asyncio
import logging
import time

from sqlalchemy import func, select

from studycore.config import settings, utcnow
from studycore.database import async_session, engine
from studycore.errors import PersistenceError
from studycore.models import Base
from studycore.models.review_log import ReviewLog
from studycore.srs.queue import select_due
from studycore.srs.session import SessionEngine
from studycore.srs.sm2 import QualityRating
from studycore.srs.store import ScheduleStore
from studycore.srs.study import StudyService

RATING_KEYS = {
    "1": QualityRating.AGAIN,
    "2": QualityRating.HARD,
    "3": QualityRating.GOOD,
    "4": QualityRating.EASY,
}


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def cmd_add(args: argparse.Namespace) -> None:
    """Enroll cards in a deck so they are due for their first review."""
    await ensure_db()
    now = utcnow()

    async with async_session() as db:
        store = ScheduleStore(db)
        added = 0
        for card_id in args.card_ids:
            if await store.get(card_id) is not None:
                print(f"  Card {card_id} is already scheduled.")
                continue
            await store.enroll(card_id, args.deck_id, now)
            added += 1
        await store.commit()

    print(f"  Enrolled {added} card(s) in deck {args.deck_id}")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show the cards that are due."""
    await ensure_db()
    now = utcnow()

    async with async_session() as db:
        schedules = await ScheduleStore(db).list_for_deck(args.deck_id)

    due = select_due(schedules, now)
    print(f"  {len(due)} of {len(schedules)} cards due in deck {args.deck_id}")
    if due:
        print("  " + " ".join(str(card_id) for card_id in due))


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive study session."""
    await ensure_db()
    service = StudyService(SessionEngine())
    sessions = service.engine

    async with async_session() as db:
        session_id, queue = await service.start(db, args.deck_id, utcnow(), limit=args.max_cards)

        if queue.total == 0:
            print("\nNo cards due for review. You're all caught up!")
            return

        print("\n  Study Session")
        print(f"  {queue.total} of {queue.total_due} due cards queued\n")
        print("  Ratings: 1=Again  2=Hard  3=Good  4=Easy")
        print("  Type 'p' to pause, 'q' to quit\n")

        while (card_id := sessions.current_card(session_id)) is not None:
            progress = sessions.get_progress(session_id)
            print(f"  [{progress.completed_cards + 1}/{progress.total_cards}] Card {card_id}")

            start_time = time.time()
            response = input("  Rate [1-4]: ").strip().lower()
            time_ms = int((time.time() - start_time) * 1000)

            if response == "q":
                sessions.abandon_session(session_id, utcnow())
                print("\n  Session ended early.")
                break

            if response == "p":
                sessions.pause_session(session_id, utcnow())
                input("  Paused. Press enter to resume...")
                sessions.resume_session(session_id, utcnow())
                continue

            quality = RATING_KEYS.get(response)
            if quality is None:
                print("  Please answer 1, 2, 3 or 4.")
                continue

            try:
                schedule = await service.answer(db, session_id, card_id, quality, time_ms, utcnow())
            except PersistenceError as exc:
                print(f"  Answer recorded, but saving failed: {exc}")
                continue
            print(f"  Next review in {schedule.interval} day(s)\n")
        else:
            sessions.complete_session(session_id, utcnow())

        if service.pending(session_id):
            try:
                saved = await service.retry_pending(db, session_id)
                print(f"  Saved {saved} schedule(s) on retry")
            except PersistenceError as exc:
                print(f"  Retry failed, {len(service.pending(session_id))} schedule(s) not saved: {exc}")

    summary = sessions.get_session_summary(session_id)
    study_ms = summary.total_time - summary.paused_time
    print("\n  Session Summary")
    print(f"  {'Cards studied:':<20} {summary.cards_studied}")
    print(f"  {'Correct:':<20} {summary.correct_answers} ({summary.accuracy * 100:.0f}%)")
    print(f"  {'Average quality:':<20} {summary.average_quality}")
    print(f"  {'Study time:':<20} {study_ms / 1000:.0f}s\n")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show deck statistics."""
    await ensure_db()
    now = utcnow()

    async with async_session() as db:
        schedules = await ScheduleStore(db).list_for_deck(args.deck_id)
        reviews = (
            await db.execute(
                select(func.count(ReviewLog.id)).where(ReviewLog.deck_id == args.deck_id)
            )
        ).scalar() or 0

    due = len(select_due(schedules, now))
    new = sum(1 for s in schedules if s.last_review_date is None)
    mature = sum(1 for s in schedules if (s.interval or 0) >= 21)

    print(f"\n  {settings.app_name} Statistics (deck {args.deck_id})")
    print(f"  {'Total cards:':<20} {len(schedules)}")
    print(f"  {'Due now:':<20} {due}")
    print(f"  {'New (unseen):':<20} {new}")
    print(f"  {'Mature (21+ days):':<20} {mature}")
    print(f"  {'Total reviews:':<20} {reviews}")
    print()


def main() -> None:
    """Entry point for the Study Core CLI application."""
    parser = argparse.ArgumentParser(
        prog="studycli",
        description="Spaced repetition study sessions",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add
    add_parser = subparsers.add_parser("add", help="Enroll cards in a deck")
    add_parser.add_argument("deck_id", type=int, help="Deck id")
    add_parser.add_argument("card_ids", type=int, nargs="+", help="Card ids")

    # due
    due_parser = subparsers.add_parser("due", help="Show cards due for review")
    due_parser.add_argument("deck_id", type=int, help="Deck id")

    # review
    review_parser = subparsers.add_parser("review", help="Start a study session")
    review_parser.add_argument("deck_id", type=int, help="Deck id")
    review_parser.add_argument(
        "--max-cards", type=int, default=settings.max_cards_per_session, help="Max cards per session"
    )

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show deck statistics")
    stats_parser.add_argument("deck_id", type=int, help="Deck id")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "add": cmd_add,
        "due": cmd_due,
        "review": cmd_review,
        "stats": cmd_stats,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
