from sqlalchemy.dialects import postgresql

from helpers import FakeRedis, FakeResult, FakeSession, RecordingEmitter, make_metadata, session_factory_for
from rafflecache.services.cache_store import CacheStore
from rafflecache.services.dedup_ledger import DedupLedger
from rafflecache.services.notification_triggers import (
    NotificationRequest,
    NotificationTrigger,
    SqlNotificationEmitter,
    build_notification_insert,
    build_notifications,
)
from rafflecache.services.records import RAFFLE_CREATED, RAFFLE_FINALIZED, TICKET_PURCHASE, ActivityRecord


def _purchase(version: str = "100", buyer: str = "0xbuyer", tickets: int = 2, paid: float = 0.2) -> ActivityRecord:
    return ActivityRecord(
        kind=TICKET_PURCHASE,
        raffle_id=7,
        source_version=version,
        block_height=1,
        timestamp="2026-01-01T00:00:00+00:00",
        buyer=buyer,
        ticket_count=tickets,
        amount_paid=paid,
    )


def _finalized(version: str = "200", winner: str = "0xwinner", prize: float | None = 3.0) -> ActivityRecord:
    return ActivityRecord(
        kind=RAFFLE_FINALIZED,
        raffle_id=7,
        source_version=version,
        block_height=2,
        timestamp="2026-01-02T00:00:00+00:00",
        winner=winner,
        prize_amount=prize,
    )


def test_purchase_notifies_the_creator() -> None:
    [request] = build_notifications(_purchase(), make_metadata(7, creator="0xcreator", title="Big Draw"))

    assert request.user_address == "0xcreator"
    assert request.type == "ticket_purchased"
    assert request.title == "New Ticket Purchase!"
    assert request.related_address == "0xbuyer"
    assert request.transaction_hash == "100"
    assert "2 tickets" in request.message
    assert '"Big Draw"' in request.message


def test_purchase_by_creator_or_without_metadata_notifies_nobody() -> None:
    assert build_notifications(_purchase(buyer="0xCREATOR"), make_metadata(7, creator="0xcreator")) == []
    assert build_notifications(_purchase(), None) == []
    assert build_notifications(_purchase(tickets=0), make_metadata(7)) == []


def test_created_raffle_notifies_its_creator() -> None:
    record = ActivityRecord(
        kind=RAFFLE_CREATED,
        raffle_id=9,
        source_version="50",
        block_height=1,
        timestamp="2026-01-01T00:00:00+00:00",
        creator="0xcreator",
        prize_amount=1.5,
    )

    [request] = build_notifications(record)

    assert request.type == "raffle_created"
    assert request.user_address == "0xcreator"
    assert "#9" in request.message


def test_finalized_raffle_notifies_winner_and_creator() -> None:
    requests = build_notifications(_finalized(), make_metadata(7, creator="0xcreator"))

    assert [(r.type, r.user_address) for r in requests] == [
        ("raffle_won", "0xwinner"),
        ("raffle_ended", "0xcreator"),
    ]
    assert requests[1].related_address == "0xwinner"
    assert '"Raffle #7"' in requests[0].message


def test_creator_who_wins_gets_only_the_win_notice() -> None:
    requests = build_notifications(_finalized(winner="0xCreator"), make_metadata(7, creator="0xcreator"))

    assert [r.type for r in requests] == ["raffle_won"]


def test_finalized_prize_falls_back_to_metadata() -> None:
    [won, _ended] = build_notifications(_finalized(prize=None), make_metadata(7))

    assert won.amount == 5.0


async def test_event_is_processed_once_per_ledger_window(fake_redis: FakeRedis) -> None:
    emitter = RecordingEmitter()
    trigger = NotificationTrigger(DedupLedger(CacheStore(fake_redis)), emitter)
    metadata = make_metadata(7)

    assert await trigger.process_activity(_purchase(), metadata) is True
    assert await trigger.process_activity(_purchase(), metadata) is False

    assert len(emitter.emitted) == 1
    assert fake_redis.raw("processed_tx:100") is not None


async def test_failed_emit_leaves_event_unmarked(fake_redis: FakeRedis) -> None:
    emitter = RecordingEmitter(fail_on={"raffle_ended"})
    trigger = NotificationTrigger(DedupLedger(CacheStore(fake_redis)), emitter)

    handled = await trigger.process_activity(_finalized(), make_metadata(7))

    assert handled is False
    assert fake_redis.raw("processed_tx:200") is None

    emitter.fail_on.clear()
    assert await trigger.process_activity(_finalized(), make_metadata(7)) is True


async def test_process_batch_counts_handled_records(fake_redis: FakeRedis) -> None:
    emitter = RecordingEmitter()
    trigger = NotificationTrigger(DedupLedger(CacheStore(fake_redis)), emitter)
    records = [_purchase("1"), _purchase("2"), _finalized("3")]

    summary = await trigger.process_batch(records, {7: make_metadata(7)})
    again = await trigger.process_batch(records, {7: make_metadata(7)})

    assert summary == {"seen": 3, "processed": 3, "failed": []}
    assert again == {"seen": 3, "processed": 0, "failed": []}
    assert len(emitter.emitted) == 4


async def test_trigger_without_emitter_is_disabled(fake_redis: FakeRedis) -> None:
    trigger = NotificationTrigger(DedupLedger(CacheStore(fake_redis)), None)

    assert trigger.enabled is False
    assert await trigger.process_batch([_purchase()]) == {"seen": 1, "processed": 0, "failed": []}
    assert fake_redis.raw("processed_tx:100") is None


def test_notification_insert_ignores_idempotency_conflicts() -> None:
    request = NotificationRequest(user_address="0xa", type="raffle_won", title="t", message="m", transaction_hash="9")

    sql = str(build_notification_insert(request).compile(dialect=postgresql.dialect()))

    assert "ON CONFLICT ON CONSTRAINT uq_notifications_idempotency DO NOTHING" in sql


async def test_sql_emitter_reports_duplicate_as_not_inserted() -> None:
    session = FakeSession(results=[FakeResult(rowcount=1), FakeResult(rowcount=0)])
    emitter = SqlNotificationEmitter(session_factory_for(session))
    request = NotificationRequest(user_address="0xa", type="raffle_won", title="t", message="m", transaction_hash="9")

    assert await emitter.emit(request) is True
    assert await emitter.emit(request) is False
    assert session.commits == 2


async def test_process_batch_reports_failed_versions(fake_redis: FakeRedis) -> None:
    emitter = RecordingEmitter(fail_on={"raffle_won"})
    trigger = NotificationTrigger(DedupLedger(CacheStore(fake_redis)), emitter)

    summary = await trigger.process_batch([_purchase("1"), _finalized("2")], {7: make_metadata(7)})

    assert summary == {"seen": 2, "processed": 1, "failed": ["2"]}
    assert fake_redis.raw("processed_tx:1") is not None
    assert fake_redis.raw("processed_tx:2") is None
