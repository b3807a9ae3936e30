"""
Staleness-driven sync scheduling.

Commands that read the store first call ``maybe_auto_sync`` so that a
mirror untouched for a day catches up before answering. Every attempt
records the current time, whether or not completion was observed, so a
slow or unreachable server does not trigger a sync on every invocation.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from wamirror.core.config import MirrorConfig
from wamirror.core.db import MessageStore
from wamirror.core import timeutil
from wamirror.services.ingestion import SyncOutcome
from wamirror.services.session import MirrorSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Optional[MirrorSession]]


class SyncScheduler:
    """
    Decides when to sync and runs bounded syncs.

    Parameters
    ----
    store : MessageStore
        Store holding the last-sync timestamp
    config : MirrorConfig
        Supplies ``no_auto_sync``, ``stale_after`` and ``sync_timeout``
    """

    def __init__(self, store: MessageStore, config: MirrorConfig):
        self.store = store
        self.config = config

    def should_auto_sync(self, now: Optional[datetime] = None) -> bool:
        """
        Return True if the last sync is missing or older than ``stale_after``.

        Always False when auto-sync is disabled.
        """
        if self.config.no_auto_sync:
            return False

        last_sync = self.store.get_last_sync_time()
        if last_sync is None:
            return True

        if now is None:
            now = timeutil.utcnow()
        return now - last_sync > self.config.stale_after

    def maybe_auto_sync(self, session_factory: SessionFactory,
                        cancel: Optional[threading.Event] = None) -> Optional[SyncOutcome]:
        """
        Run a temporary connect/wait/disconnect sync if the mirror is stale.

        Parameters
        ----
        session_factory : callable
            Returns a new session, or None when no transport is configured
        cancel : threading.Event, optional
            Ends the wait early

        Returns
        ----
        SyncOutcome, optional
            Outcome of the wait, or None if no sync was attempted

        Raises
        ---
        TransportError
            If connecting fails
        """
        if not self.should_auto_sync():
            return None

        session = session_factory()
        if session is None:
            logger.debug("Auto-sync skipped: no transport configured")
            return None

        if not session.is_authenticated():
            logger.debug("Auto-sync skipped: not authenticated")
            return None

        self._announce()
        session.connect()
        try:
            return self._wait_and_record(session, cancel)
        finally:
            session.disconnect()

    def maybe_auto_sync_with_session(self, session: MirrorSession,
                                     cancel: Optional[threading.Event] = None) -> Optional[SyncOutcome]:
        """Same policy as ``maybe_auto_sync`` over an already connected session."""
        if not self.should_auto_sync():
            return None

        self._announce()
        return self._wait_and_record(session, cancel)

    def wait_for_sync(self, session: MirrorSession, timeout: float,
                      cancel: Optional[threading.Event] = None) -> SyncOutcome:
        """Bounded wait for completion, then advance the last-sync time."""
        return self._wait_and_record(session, cancel, timeout)

    def _announce(self):
        last_sync = self.store.get_last_sync_time()
        logger.info("Auto-syncing (last sync: %s)...", timeutil.format_time_since(last_sync))

    def _wait_and_record(self, session: MirrorSession, cancel: Optional[threading.Event],
                         timeout: Optional[float] = None) -> SyncOutcome:
        if timeout is None:
            timeout = self.config.sync_timeout

        outcome = SyncOutcome.CANCELLED
        try:
            outcome = session.wait_for_sync(timeout, cancel)
        finally:
            self.store.set_last_sync_time(timeutil.utcnow())

        if outcome == SyncOutcome.COMPLETED:
            logger.info("Sync complete.")
        elif outcome == SyncOutcome.TIMED_OUT:
            logger.warning("Sync timeout (continuing with available data).")
        else:
            logger.info("Sync cancelled.")
        return outcome
