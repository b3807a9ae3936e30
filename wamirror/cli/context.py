"""
CLI context and configuration management.

Provides shared context for Click commands with store and session lifecycle
management.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

import click

from wamirror.core.config import MirrorConfig, load_config
from wamirror.core.db import MessageStore
from wamirror.core.errors import MirrorError
from wamirror.services.session import MirrorSession, open_session
from wamirror.services.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Attributes:
        verbose: Enable verbose logging output
        config_path: Optional YAML config file (uses OS-specific default if None)
        store_dir: Optional store directory overriding the config
        no_auto_sync: Disable auto-sync for this invocation
        _config: Loaded configuration (lazy-initialized)
        _store: Internal store connection (lazy-initialized)
        _session: Transport session (lazy-initialized, may stay None)
    """
    verbose: bool = False
    config_path: Optional[Path] = None
    store_dir: Optional[Path] = None
    no_auto_sync: bool = False
    _config: Optional[MirrorConfig] = field(default=None, repr=False, init=False)
    _store: Optional[MessageStore] = field(default=None, repr=False, init=False)
    _session: Optional[MirrorSession] = field(default=None, repr=False, init=False)

    def get_config(self) -> MirrorConfig:
        if self._config is None:
            self._config = load_config(
                self.config_path,
                store_dir=self.store_dir,
                no_auto_sync=True if self.no_auto_sync else None,
            )
        return self._config

    def get_store(self) -> MessageStore:
        """
        Get or open the message store (lazy initialization).

        Returns:
            MessageStore instance
        """
        if self._store is None:
            config = self.get_config()
            config.ensure_directories()
            if self.verbose:
                logger.info("Opening database: %s", config.messages_db_path)
            self._store = MessageStore(config.messages_db_path)
        return self._store

    def get_session(self) -> Optional[MirrorSession]:
        """Session over the configured transport, or None if there is none."""
        if self._session is None:
            self._session = open_session(self.get_config(), self.get_store())
        return self._session

    def get_scheduler(self) -> SyncScheduler:
        return SyncScheduler(self.get_store(), self.get_config())

    def connect(self) -> MirrorSession:
        """
        Return a connected, authenticated session.

        Raises:
            click.ClickException: If no transport is configured or it is not paired
        """
        session = self.get_session()
        if session is None:
            raise click.ClickException(
                "No transport configured. Set 'transport' in config.yaml or WAMIRROR_TRANSPORT."
            )
        if not session.is_authenticated():
            raise click.ClickException("Not authenticated. Pair the transport first.")
        if not session.is_connected():
            session.connect()
        return session

    def auto_sync(self):
        """Run the staleness-driven sync; failures are reported as warnings."""
        try:
            scheduler = self.get_scheduler()
            if self._session is not None and self._session.is_connected():
                scheduler.maybe_auto_sync_with_session(self._session)
            else:
                scheduler.maybe_auto_sync(self.get_session)
        except MirrorError as e:
            click.secho(f"Warning: auto-sync failed: {e}", fg='yellow', err=True)

    def close(self):
        """
        Clean up resources (disconnect the session, close the store).

        Called automatically via Click's result_callback after command execution.
        """
        if self._session is not None:
            self._session.close()
            self._session = None
        if self._store is not None:
            if self.verbose:
                logger.debug("Closing database connection")
            self._store.close()
            self._store = None
