"""
Message ingestion from the transport's event stream.

Two producers feed the store: live message events and batched history-sync
conversations. Both go through the same idempotent upserts, so a message
delivered by both ends up as one row.
"""
import logging
import sqlite3
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from wamirror.core.db import MessageStore
from wamirror.core.errors import MirrorError
from wamirror.core.identifiers import Identifier, normalize_user, phone_identifier
from wamirror.core.models import Message, MediaInfo
from wamirror.core import timeutil
from wamirror.services.identity import IdentityResolver
from wamirror.transport.base import Transport
from wamirror.transport.events import (
    MessageEvent,
    HistorySyncEvent,
    HistoryMessage,
    OfflineSyncCompleted,
    Connected,
    LoggedOut,
)

logger = logging.getLogger(__name__)


class SyncOutcome(str, Enum):
    """How a wait for history-sync completion ended."""
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class SyncSignal:
    """
    Completion signal shared between ingestion and sync waiters.

    Each completion bumps a generation counter. A waiter passes the
    generation it observed when it connected, so a completion that lands
    between connecting and starting to wait is still seen.
    """

    POLL_INTERVAL = 0.2

    def __init__(self):
        self._cond = threading.Condition()
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._cond:
            return self._generation

    def notify(self):
        """Record a completion and wake all waiters."""
        with self._cond:
            self._generation += 1
            self._cond.notify_all()

    def wait(self, since_generation: int, timeout: float,
             cancel: Optional[threading.Event] = None) -> SyncOutcome:
        """
        Wait until a completion newer than ``since_generation`` is signalled.

        Parameters
        ----
        since_generation : int
            Generation observed before the wait started
        timeout : float
            Maximum seconds to wait
        cancel : threading.Event, optional
            Setting this ends the wait early

        Returns
        ----
        SyncOutcome
            COMPLETED, TIMED_OUT, or CANCELLED (also on KeyboardInterrupt)
        """
        deadline = time.monotonic() + timeout
        try:
            with self._cond:
                while self._generation <= since_generation:
                    if cancel is not None and cancel.is_set():
                        return SyncOutcome.CANCELLED
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return SyncOutcome.TIMED_OUT
                    self._cond.wait(min(remaining, self.POLL_INTERVAL))
                return SyncOutcome.COMPLETED
        except KeyboardInterrupt:
            return SyncOutcome.CANCELLED


def _has_payload(text: str, media: Optional[MediaInfo]) -> bool:
    return bool(text) or bool(media and media.media_type)


def _history_time(seconds: int) -> Optional[datetime]:
    """Epoch seconds as a UTC datetime; None when missing or out of range."""
    if not seconds:
        return None
    try:
        return timeutil.from_epoch(seconds)
    except (OverflowError, OSError, ValueError):
        return None


class IngestionPipeline:
    """
    Persists decoded transport events.

    ``dispatch`` is registered as the transport's event handler. It may be
    called from any thread; store failures are logged and never propagate
    back into the transport.
    """

    def __init__(self, store: MessageStore, resolver: IdentityResolver,
                 transport: Optional[Transport] = None,
                 signal: Optional[SyncSignal] = None):
        """
        Initialize pipeline.

        Parameters
        ----
        store : MessageStore
            Destination store
        resolver : IdentityResolver
            Name resolution for senders and chats
        transport : Transport, optional
            Source of the account owner's identity for history sync
        signal : SyncSignal, optional
            Notified when history sync completes
        """
        self.store = store
        self.resolver = resolver
        self.transport = transport
        self.signal = signal or SyncSignal()
        self._handlers: Dict[type, Callable] = {
            MessageEvent: self.handle_message,
            HistorySyncEvent: self.handle_history_sync,
            OfflineSyncCompleted: self.handle_offline_sync_completed,
            Connected: self.handle_connected,
            LoggedOut: self.handle_logged_out,
        }

    def dispatch(self, event):
        """Route an event to its handler; unknown types are ignored."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("Ignoring unhandled event type %s", type(event).__name__)
            return

        try:
            handler(event)
        except (sqlite3.Error, MirrorError) as e:
            logger.warning("Failed to handle %s: %s", type(event).__name__, e)

    def handle_message(self, event: MessageEvent) -> bool:
        """
        Persist a live message.

        Returns
        ----
        bool
            True if the message was stored
        """
        if not _has_payload(event.text, event.media):
            logger.debug("Dropping message %s without text or media", event.id)
            return False

        try:
            chat = Identifier.parse(event.chat)
        except ValueError as e:
            logger.warning("Dropping message %s with bad chat identifier: %s", event.id, e)
            return False
        chat_identifier = str(chat)

        sender = self._live_sender(event, chat)
        sender_user = sender.user if sender else ""

        try:
            if sender and sender.is_secondary and event.sender_alt and not event.is_from_me:
                self.resolver.record_identity(sender.user, phone=normalize_user(event.sender_alt))

            sender_name = self.resolver.resolve_sender_name(
                sender_user, str(sender) if sender else "", event.push_name
            )

            name = ""
            if not self.store.get_chat_name(chat_identifier):
                name = self.resolver.chat_display_name(chat_identifier)
            self.store.upsert_chat(chat_identifier, name, event.timestamp)

            if sender and not event.is_from_me:
                self._ensure_shadow_chat(sender)

            self.store.upsert_message(Message(
                id=event.id,
                chat_identifier=chat_identifier,
                sender=sender_user,
                sender_name=sender_name,
                content=event.text or None,
                timestamp=event.timestamp,
                is_own=event.is_from_me,
                media=event.media if event.media and event.media.media_type else None,
            ))
        except sqlite3.Error as e:
            logger.warning("Failed to store message %s in %s: %s", event.id, chat_identifier, e)
            return False
        return True

    def handle_history_sync(self, event: HistorySyncEvent) -> int:
        """
        Persist a batch of history-sync conversations.

        Returns
        ----
        int
            Number of messages stored
        """
        synced = 0
        for conversation in event.conversations:
            try:
                chat = Identifier.parse(conversation.identifier)
            except ValueError as e:
                logger.warning("History sync: bad identifier %r: %s", conversation.identifier, e)
                continue

            pending: List[Tuple[HistoryMessage, datetime]] = []
            for m in conversation.messages:
                if not _has_payload(m.text, m.media):
                    continue
                when = _history_time(m.timestamp)
                if when is None:
                    logger.debug("History sync: dropping message %s with unusable timestamp %r",
                                 m.id, m.timestamp)
                    continue
                pending.append((m, when))
            if not pending:
                continue

            chat_identifier = str(chat)
            newest = max(when for _, when in pending)
            try:
                name = ""
                if not self.store.get_chat_name(chat_identifier):
                    name = self.resolver.chat_display_name(chat_identifier, conversation.name)
                self.store.upsert_chat(chat_identifier, name, newest)
            except sqlite3.Error as e:
                logger.warning("History sync: failed to upsert chat %s: %s", chat_identifier, e)
                continue

            for message, when in pending:
                if self._store_history_message(chat, message, when):
                    synced += 1

        logger.info("History sync persisted %d messages", synced)

        if event.progress >= 100:
            logger.info("History sync complete")
            self._complete()
        return synced

    def handle_offline_sync_completed(self, event: OfflineSyncCompleted):
        logger.debug("Offline queue drained (%d events)", event.count)
        self._complete()

    def handle_connected(self, event: Connected):
        logger.info("Connected to WhatsApp")

    def handle_logged_out(self, event: LoggedOut):
        logger.warning("Logged out of WhatsApp%s", f": {event.reason}" if event.reason else "")

    def _complete(self):
        try:
            self.resolver.backfill_chat_names()
        except sqlite3.Error as e:
            logger.warning("Backfill failed: %s", e)
        finally:
            self.signal.notify()

    def _own_user(self) -> str:
        if self.transport is None:
            return ""
        return self.transport.own_user() or ""

    def _live_sender(self, event: MessageEvent, chat: Identifier) -> Optional[Identifier]:
        if event.sender:
            try:
                return Identifier.parse(event.sender).to_non_device()
            except ValueError:
                logger.debug("Unparseable sender %r on message %s", event.sender, event.id)
        if event.is_from_me:
            own = self._own_user()
            return Identifier(user=own) if own else None
        if not chat.is_group:
            return chat.to_non_device()
        return None

    def _shadow_identifier(self, sender: Identifier) -> str:
        """Individual chat identifier for a sender, preferring the phone identity."""
        if sender.is_secondary:
            mapping = self.store.get_identity_mapping(sender.user)
            if mapping and mapping.phone:
                return phone_identifier(mapping.phone)
            return str(sender)
        return phone_identifier(sender.user)

    def _ensure_shadow_chat(self, sender: Identifier):
        # never the push name, so backfill can still upgrade the placeholder
        shadow = self._shadow_identifier(sender)
        if self.store.get_chat_name(shadow):
            return
        if self.store.ensure_chat(shadow, self.resolver.preferred_name(shadow)):
            logger.debug("Created chat %s for sender", shadow)

    def _store_history_message(self, chat: Identifier, message: HistoryMessage,
                               when: datetime) -> bool:
        if message.from_me:
            sender_user = self._own_user()
            sender_full = phone_identifier(sender_user) if sender_user else ""
        elif message.participant:
            sender_user = normalize_user(message.participant)
            sender_full = message.participant
        else:
            sender_user = chat.user
            sender_full = str(chat)

        sender = None
        if sender_full:
            try:
                sender = Identifier.parse(sender_full).to_non_device()
            except ValueError:
                logger.debug("Unparseable participant %r on message %s", sender_full, message.id)

        chat_identifier = str(chat)
        try:
            sender_name = self.resolver.resolve_sender_name(
                sender_user, str(sender) if sender else ""
            )
            if sender and not message.from_me:
                self._ensure_shadow_chat(sender)

            self.store.upsert_message(Message(
                id=message.id,
                chat_identifier=chat_identifier,
                sender=sender_user,
                sender_name=sender_name,
                content=message.text or None,
                timestamp=when,
                is_own=message.from_me,
                media=message.media if message.media and message.media.media_type else None,
            ))
        except sqlite3.Error as e:
            logger.warning("History sync: failed to store message %s in %s: %s",
                           message.id, chat_identifier, e)
            return False
        return True

