"""
A transport connection wired to the ingestion pipeline.
"""
import logging
import threading
from typing import Optional

from wamirror.core.config import MirrorConfig
from wamirror.core.db import MessageStore
from wamirror.services.identity import IdentityResolver
from wamirror.services.ingestion import IngestionPipeline, SyncOutcome, SyncSignal
from wamirror.transport.base import Transport, load_transport

logger = logging.getLogger(__name__)


class MirrorSession:
    """
    Owns one transport and routes its events into the store.

    The session remembers the completion generation at connect time so that
    a history sync finishing before anyone waits is not missed.
    """

    def __init__(self, store: MessageStore, transport: Transport,
                 signal: Optional[SyncSignal] = None):
        self.store = store
        self.transport = transport
        self.signal = signal or SyncSignal()
        self.resolver = IdentityResolver(store, transport)
        self.pipeline = IngestionPipeline(store, self.resolver, transport, self.signal)
        self.connected_generation = self.signal.generation
        transport.set_event_handler(self.pipeline.dispatch)

    def is_authenticated(self) -> bool:
        return self.transport.is_authenticated()

    def is_connected(self) -> bool:
        return self.transport.is_connected()

    def connect(self):
        """Connect the transport; raises TransportError on failure."""
        self.connected_generation = self.signal.generation
        self.transport.connect()
        logger.debug("Session connected (generation %d)", self.connected_generation)

    def disconnect(self):
        if self.transport.is_connected():
            self.transport.disconnect()
            logger.debug("Session disconnected")

    def wait_for_sync(self, timeout: float,
                      cancel: Optional[threading.Event] = None) -> SyncOutcome:
        """Wait for a history-sync completion signalled since connecting."""
        return self.signal.wait(self.connected_generation, timeout, cancel)

    def close(self):
        self.disconnect()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def open_session(config: MirrorConfig, store: MessageStore) -> Optional[MirrorSession]:
    """
    Build a session from the configured transport.

    Returns
    ----
    MirrorSession, optional
        The session, or None if no transport is configured

    Raises
    ---
    ConfigurationError
        If the configured transport cannot be loaded
    """
    if not config.transport:
        logger.debug("No transport configured")
        return None
    transport = load_transport(config.transport, config)
    return MirrorSession(store, transport)
