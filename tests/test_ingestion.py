"""
Tests for the ingestion pipeline and the completion signal.
"""
import sqlite3
import threading
from datetime import datetime, timezone
from unittest.mock import patch

from conftest import OWN_USER

from wamirror.core.models import ContactInfo, GroupInfo, MediaInfo, MessageQuery
from wamirror.services.ingestion import SyncOutcome, SyncSignal
from wamirror.transport.events import (
    Connected,
    Conversation,
    HistoryMessage,
    HistorySyncEvent,
    LoggedOut,
    MessageEvent,
    OfflineSyncCompleted,
)

GROUP = "120363000@g.us"
ALICE = "447700900001@s.whatsapp.net"


def at(hour):
    return datetime(2024, 2, 1, hour, 0, tzinfo=timezone.utc)


def epoch(hour):
    return int(at(hour).timestamp())


class TestLiveMessages:
    """Real-time message events."""

    def test_message_creates_chat_and_row(self, pipeline, temp_store, transport):
        transport.contacts[ALICE] = ContactInfo(full_name="Alice")

        stored = pipeline.handle_message(MessageEvent(
            id="m1", chat=ALICE, sender=ALICE, push_name="Ali",
            timestamp=at(9), text="hello there",
        ))

        assert stored is True
        chat = temp_store.get_chat(ALICE)
        assert chat.name == "Alice"
        assert chat.last_message_time == at(9)

        message = temp_store.get_message("m1", ALICE)
        assert message.sender == "447700900001"
        assert message.sender_name == "Alice"
        assert message.content == "hello there"

    def test_empty_message_dropped(self, pipeline, temp_store):
        assert pipeline.handle_message(MessageEvent(id="m1", chat=ALICE, sender=ALICE, timestamp=at(9))) is False
        assert pipeline.handle_message(MessageEvent(
            id="m2", chat=ALICE, sender=ALICE, timestamp=at(9), media=MediaInfo()
        )) is False
        assert temp_store.count_messages() == 0
        assert temp_store.count_chats() == 0

    def test_media_only_message_kept(self, pipeline, temp_store):
        media = MediaInfo(media_type="image", filename="photo.jpg", url="https://mmg/1")
        assert pipeline.handle_message(MessageEvent(
            id="m1", chat=ALICE, sender=ALICE, timestamp=at(9), media=media
        )) is True
        assert temp_store.get_message("m1", ALICE).media.filename == "photo.jpg"

    def test_duplicate_delivery_is_idempotent(self, pipeline, temp_store):
        event = MessageEvent(id="m1", chat=ALICE, sender=ALICE, timestamp=at(9), text="same")
        pipeline.handle_message(event)
        pipeline.handle_message(event)

        assert temp_store.count_messages() == 1
        assert temp_store.count_chats() == 1

    def test_out_of_order_keeps_newest_time(self, pipeline, temp_store):
        pipeline.handle_message(MessageEvent(id="m2", chat=ALICE, sender=ALICE, timestamp=at(10), text="later"))
        pipeline.handle_message(MessageEvent(id="m1", chat=ALICE, sender=ALICE, timestamp=at(8), text="earlier"))

        assert temp_store.get_chat(ALICE).last_message_time == at(10)

    def test_group_message_creates_shadow_chat(self, pipeline, temp_store, transport):
        transport.groups[GROUP] = GroupInfo(identifier=GROUP, name="Climbing")

        pipeline.handle_message(MessageEvent(
            id="g1", chat=GROUP, sender="447700900002:5@s.whatsapp.net",
            push_name="Bea", timestamp=at(9), text="who's in?",
        ))

        assert temp_store.get_chat_name(GROUP) == "Climbing"
        assert temp_store.get_chat_name("447700900002@s.whatsapp.net") == "447700900002"
        message = temp_store.get_message("g1", GROUP)
        assert message.sender == "447700900002"
        assert message.sender_name == "Bea"

    def test_shadow_chat_upgraded_once_contact_is_known(self, pipeline, temp_store, transport, resolver):
        pipeline.handle_message(MessageEvent(
            id="g1", chat=GROUP, sender="447700900002@s.whatsapp.net",
            push_name="Bea", timestamp=at(9), text="hi",
        ))
        transport.contacts["447700900002@s.whatsapp.net"] = ContactInfo(full_name="Beatrice Smith")

        resolver.backfill_chat_names()

        assert temp_store.get_chat_name("447700900002@s.whatsapp.net") == "Beatrice Smith"

    def test_direct_chat_not_named_after_push_name(self, pipeline, temp_store, transport, resolver):
        pipeline.handle_message(MessageEvent(
            id="m1", chat=ALICE, sender=ALICE, push_name="Ali", timestamp=at(9), text="hey",
        ))
        assert temp_store.get_chat_name(ALICE) == "447700900001"

        transport.contacts[ALICE] = ContactInfo(full_name="Alice")
        resolver.backfill_chat_names()
        assert temp_store.get_chat_name(ALICE) == "Alice"

    def test_shadow_chat_gains_but_never_loses_name(self, pipeline, temp_store, transport):
        temp_store.ensure_chat("447700900002@s.whatsapp.net", "")
        transport.contacts["447700900002@s.whatsapp.net"] = ContactInfo(full_name="Beatrice")
        pipeline.handle_message(MessageEvent(
            id="g1", chat=GROUP, sender="447700900002@s.whatsapp.net",
            push_name="Bea", timestamp=at(9), text="hi",
        ))
        assert temp_store.get_chat_name("447700900002@s.whatsapp.net") == "Beatrice"

        del transport.contacts["447700900002@s.whatsapp.net"]
        pipeline.handle_message(MessageEvent(
            id="g2", chat=GROUP, sender="447700900002@s.whatsapp.net",
            timestamp=at(10), text="again",
        ))
        assert temp_store.get_chat_name("447700900002@s.whatsapp.net") == "Beatrice"

    def test_own_message_creates_no_shadow_chat(self, pipeline, temp_store):
        pipeline.handle_message(MessageEvent(
            id="g1", chat=GROUP, sender=f"{OWN_USER}@s.whatsapp.net",
            timestamp=at(9), text="mine", is_from_me=True,
        ))

        assert temp_store.get_chat_name(f"{OWN_USER}@s.whatsapp.net") is None
        assert temp_store.get_message("g1", GROUP).is_own is True

    def test_secondary_sender_with_known_phone(self, pipeline, temp_store):
        pipeline.handle_message(MessageEvent(
            id="g1", chat=GROUP, sender="98765@lid", sender_alt="447700900003@s.whatsapp.net",
            push_name="Cy", timestamp=at(9), text="hello",
        ))

        assert temp_store.get_identity_mapping("98765").phone == "447700900003"
        assert temp_store.get_chat_name("447700900003@s.whatsapp.net") == "447700900003"
        assert temp_store.get_chat_name("98765@lid") is None

    def test_secondary_sender_without_phone(self, pipeline, temp_store):
        pipeline.handle_message(MessageEvent(
            id="g1", chat=GROUP, sender="98765@lid", push_name="Cy",
            timestamp=at(9), text="hello",
        ))

        assert temp_store.get_chat_name("98765@lid") == "98765"
        assert temp_store.get_message("g1", GROUP).sender_name == "Cy"

    def test_store_failure_is_logged_not_raised(self, pipeline, temp_store):
        with patch.object(temp_store, "upsert_message", side_effect=sqlite3.OperationalError("disk I/O error")):
            assert pipeline.handle_message(MessageEvent(
                id="m1", chat=ALICE, sender=ALICE, timestamp=at(9), text="lost"
            )) is False

    def test_bad_chat_identifier_dropped(self, pipeline, temp_store):
        assert pipeline.handle_message(MessageEvent(id="m1", chat="@", text="x", timestamp=at(9))) is False
        assert temp_store.count_messages() == 0


class TestHistorySync:
    """Bulk history-sync batches."""

    def test_history_batch_persists_messages(self, pipeline, temp_store):
        event = HistorySyncEvent(progress=40, conversations=[
            Conversation(identifier=GROUP, name="Old Friends", messages=[
                HistoryMessage(id="h1", participant="447700900004:2@s.whatsapp.net",
                               timestamp=epoch(8), text="first"),
                HistoryMessage(id="h2", from_me=True, timestamp=epoch(11), text="mine"),
                HistoryMessage(id="h3", participant="447700900004@s.whatsapp.net",
                               timestamp=0, text="no timestamp"),
                HistoryMessage(id="h4", participant="447700900004@s.whatsapp.net",
                               timestamp=epoch(12)),
            ]),
        ])

        assert pipeline.handle_history_sync(event) == 2

        chat = temp_store.get_chat(GROUP)
        assert chat.name == "Old Friends"
        assert chat.last_message_time == at(11)

        assert temp_store.get_message("h1", GROUP).sender == "447700900004"
        own = temp_store.get_message("h2", GROUP)
        assert own.sender == OWN_USER
        assert own.is_own is True
        assert temp_store.get_message("h3", GROUP) is None
        assert temp_store.get_message("h4", GROUP) is None

        assert temp_store.get_chat_name("447700900004@s.whatsapp.net") == "447700900004"
        assert temp_store.get_chat_name(f"{OWN_USER}@s.whatsapp.net") is None

    def test_individual_conversation_sender_is_chat(self, pipeline, temp_store):
        pipeline.handle_history_sync(HistorySyncEvent(conversations=[
            Conversation(identifier=ALICE, messages=[
                HistoryMessage(id="h1", timestamp=epoch(8), text="from alice"),
            ]),
        ]))
        assert temp_store.get_message("h1", ALICE).sender == "447700900001"

    def test_out_of_range_timestamp_dropped(self, pipeline, temp_store, signal):
        pipeline.dispatch(HistorySyncEvent(progress=100, conversations=[
            Conversation(identifier=ALICE, messages=[
                HistoryMessage(id="h1", timestamp=epoch(8), text="fine"),
                HistoryMessage(id="h2", timestamp=10 ** 20, text="corrupt"),
                HistoryMessage(id="h3", timestamp=-(10 ** 20), text="corrupt too"),
            ]),
        ]))

        assert temp_store.get_message("h1", ALICE).content == "fine"
        assert temp_store.get_message("h2", ALICE) is None
        assert temp_store.get_message("h3", ALICE) is None
        assert temp_store.get_chat(ALICE).last_message_time == at(8)
        assert signal.generation == 1

    def test_bad_conversation_skipped(self, pipeline, temp_store):
        stored = pipeline.handle_history_sync(HistorySyncEvent(conversations=[
            Conversation(identifier="", messages=[HistoryMessage(id="x", timestamp=epoch(8), text="x")]),
            Conversation(identifier=ALICE, messages=[HistoryMessage(id="h1", timestamp=epoch(8), text="ok")]),
        ]))
        assert stored == 1

    def test_live_and_history_converge(self, pipeline, temp_store):
        pipeline.handle_message(MessageEvent(id="m1", chat=ALICE, sender=ALICE, timestamp=at(9), text="hi"))
        pipeline.handle_history_sync(HistorySyncEvent(conversations=[
            Conversation(identifier=ALICE, messages=[HistoryMessage(id="m1", timestamp=epoch(9), text="hi")]),
        ]))

        assert temp_store.count_messages() == 1
        assert len(temp_store.search_messages(MessageQuery(text="hi"))) == 1

    def test_completion_runs_backfill_and_signals(self, pipeline, temp_store, transport, signal):
        temp_store.ensure_chat(ALICE, "447700900001")
        transport.contacts[ALICE] = ContactInfo(full_name="Alice")

        pipeline.handle_history_sync(HistorySyncEvent(progress=100))

        assert signal.generation == 1
        assert temp_store.get_chat_name(ALICE) == "Alice"

    def test_partial_progress_does_not_signal(self, pipeline, signal):
        pipeline.handle_history_sync(HistorySyncEvent(progress=99))
        assert signal.generation == 0


class TestDispatch:
    """Event routing through the handler table."""

    def test_offline_sync_completed_signals(self, pipeline, signal):
        pipeline.dispatch(OfflineSyncCompleted(count=3))
        assert signal.generation == 1

    def test_unknown_events_are_ignored(self, pipeline, signal, temp_store):
        pipeline.dispatch(object())
        pipeline.dispatch(Connected())
        pipeline.dispatch(LoggedOut(reason="device removed"))
        assert signal.generation == 0
        assert temp_store.count_chats() == 0

    def test_dispatch_routes_messages(self, pipeline, temp_store, transport):
        transport.set_event_handler(pipeline.dispatch)
        transport.emit(MessageEvent(id="m1", chat=ALICE, sender=ALICE, timestamp=at(9), text="routed"))
        assert temp_store.count_messages() == 1

    def test_backfill_failure_still_signals(self, pipeline, resolver, signal):
        with patch.object(resolver, "backfill_chat_names", side_effect=sqlite3.OperationalError("locked")):
            pipeline.dispatch(OfflineSyncCompleted())
        assert signal.generation == 1


class TestSyncSignal:
    """Generation-counted completion signal."""

    def test_completion_before_wait_is_seen(self):
        signal = SyncSignal()
        start = signal.generation
        signal.notify()
        assert signal.wait(start, timeout=0.1) == SyncOutcome.COMPLETED

    def test_timeout(self):
        signal = SyncSignal()
        assert signal.wait(signal.generation, timeout=0.05) == SyncOutcome.TIMED_OUT

    def test_cancel(self):
        signal = SyncSignal()
        cancel = threading.Event()
        cancel.set()
        assert signal.wait(signal.generation, timeout=5, cancel=cancel) == SyncOutcome.CANCELLED

    def test_notify_from_other_thread(self):
        signal = SyncSignal()
        start = signal.generation
        timer = threading.Timer(0.05, signal.notify)
        timer.start()
        try:
            assert signal.wait(start, timeout=5) == SyncOutcome.COMPLETED
        finally:
            timer.cancel()

    def test_notify_without_waiters_does_not_block(self):
        signal = SyncSignal()
        for _ in range(3):
            signal.notify()
        assert signal.generation == 3
