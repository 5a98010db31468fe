from datetime import UTC, datetime

from sqlalchemy.dialects import postgresql

from helpers import FakeResult, FakeSession, session_factory_for
from rafflecache.models.raffle_activity import RaffleActivity
from rafflecache.services.analytics import ActivityRecorder, activity_row, build_activity_insert
from rafflecache.services.records import RAFFLE_FINALIZED, TICKET_PURCHASE, ActivityRecord


def _purchase(version: str, buyer: str = "0xalice") -> ActivityRecord:
    return ActivityRecord(
        kind=TICKET_PURCHASE,
        raffle_id=3,
        source_version=version,
        block_height=10,
        timestamp="2026-02-01T08:30:00Z",
        buyer=buyer,
        ticket_count=2,
        amount_paid=0.2,
    )


def test_activity_row_uses_actor_and_parsed_timestamp() -> None:
    winner = ActivityRecord(
        kind=RAFFLE_FINALIZED,
        raffle_id=3,
        source_version="77",
        block_height=12,
        timestamp="2026-02-01T08:30:00",
        winner="0xbob",
        prize_amount=4.0,
    )

    row = activity_row(winner)

    assert row["user_address"] == "0xbob"
    assert row["activity_type"] == "raffle_finalized"
    assert row["transaction_version"] == "77"
    assert row["timestamp"] == datetime(2026, 2, 1, 8, 30, tzinfo=UTC)


def test_activity_insert_skips_known_versions() -> None:
    stmt = build_activity_insert([activity_row(_purchase("1"))])

    sql = str(stmt.compile(dialect=postgresql.dialect()))

    assert "ON CONFLICT (transaction_version) DO NOTHING" in sql


async def test_track_batch_dedupes_and_counts_inserted_rows() -> None:
    session = FakeSession(results=[FakeResult(rowcount=2)])
    recorder = ActivityRecorder(session_factory_for(session))

    inserted = await recorder.track_batch([_purchase("1"), _purchase("1"), _purchase("2")])

    assert inserted == 2
    assert len(session.executed) == 1
    assert session.commits == 1


async def test_track_batch_failure_rolls_back_and_reports_zero() -> None:
    session = FakeSession(error=RuntimeError("db down"))
    recorder = ActivityRecorder(session_factory_for(session))

    assert await recorder.track_batch([_purchase("1")]) == 0
    assert session.rollbacks == 1


async def test_disabled_recorder_does_nothing() -> None:
    session = FakeSession()

    assert await ActivityRecorder(None).track_batch([_purchase("1")]) == 0
    assert await ActivityRecorder(session_factory_for(session), enabled=False).track_batch([_purchase("1")]) == 0
    assert await ActivityRecorder(None).user_history("0xalice") == []
    assert session.executed == []


async def test_user_history_serializes_rows() -> None:
    row = RaffleActivity(
        transaction_version="9",
        activity_type="ticket_purchase",
        raffle_id=3,
        user_address="0xAlice",
        ticket_count=2,
        total_paid=0.2,
        prize_amount=None,
        block_height=10,
        timestamp=datetime(2026, 2, 1, tzinfo=UTC),
    )
    session = FakeSession(results=[FakeResult(rows=[row])])

    history = await ActivityRecorder(session_factory_for(session)).user_history("0xalice", limit=5)

    assert history == [
        {
            "type": "ticket_purchase",
            "raffleId": 3,
            "userAddress": "0xAlice",
            "ticketCount": 2,
            "totalPaid": 0.2,
            "prizeAmount": None,
            "transactionVersion": "9",
            "blockHeight": 10,
            "timestamp": "2026-02-01T00:00:00+00:00",
        }
    ]
