"""
Setup diagnostics for the ``doctor`` command.

Each check reports independently; a failing check never stops the ones
after it, except where a later check needs what an earlier one provides
(the database needs a writable store, authentication needs a transport).
"""
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from wamirror.core.config import MirrorConfig
from wamirror.core.db import MessageStore, fts5_available
from wamirror.core.errors import MirrorError
from wamirror.services.session import MirrorSession, open_session

logger = logging.getLogger(__name__)


@dataclass
class Check:
    """Outcome of one diagnostic check."""
    name: str
    ok: bool
    detail: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {"name": self.name, "ok": self.ok, "detail": self.detail or None}
        result.update(self.data)
        return result


@dataclass
class DoctorReport:
    """All checks from one diagnostic run."""
    checks: List[Check] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(check.ok for check in self.checks)

    def add(self, name: str, ok: bool, detail: str = "", **data) -> Check:
        check = Check(name=name, ok=ok, detail=detail, data=data)
        self.checks.append(check)
        if not ok:
            logger.debug("Check failed: %s (%s)", name, detail)
        return check

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checks": [check.to_dict() for check in self.checks],
            "healthy": self.healthy,
        }


def _directory_writable(path) -> Optional[str]:
    """Error text if a file cannot be created in ``path``, else None."""
    try:
        fd, name = tempfile.mkstemp(prefix=".doctor-", dir=str(path))
    except OSError as e:
        return str(e)
    os.close(fd)
    os.unlink(name)
    return None


def run_checks(config: MirrorConfig, connect: bool = False) -> DoctorReport:
    """
    Diagnose the local setup.

    Parameters
    ----
    config : MirrorConfig
        Configuration whose store and transport are checked
    connect : bool
        Also open (and close) a live transport connection

    Returns
    ----
    DoctorReport
        Checks in order: store directory, messages database, full-text
        search, transport, authentication and optionally connection
    """
    report = DoctorReport()
    store_dir = config.store_dir

    store_ok = False
    if not store_dir.is_dir():
        report.add("store_directory", False, "does not exist", path=str(store_dir), exists=False)
    else:
        error = _directory_writable(store_dir)
        store_ok = error is None
        report.add("store_directory", store_ok, f"not writable: {error}" if error else "",
                   path=str(store_dir), exists=True)

    store = None
    if store_ok:
        try:
            store = MessageStore(config.messages_db_path)
            report.add("messages_database", True, path=str(config.messages_db_path),
                       chats=store.count_chats(), messages=store.count_messages())
        except MirrorError as e:
            report.add("messages_database", False, str(e), path=str(config.messages_db_path))
    else:
        report.add("messages_database", False, "store directory unusable",
                   path=str(config.messages_db_path))

    if fts5_available():
        report.add("full_text_search", True)
    else:
        report.add("full_text_search", False, "SQLite build lacks FTS5")

    session: Optional[MirrorSession] = None
    try:
        if not config.transport:
            report.add("transport", False, "not configured")
        elif store is None:
            report.add("transport", False, "needs the messages database", import_path=config.transport)
        else:
            try:
                session = open_session(config, store)
                report.add("transport", True, import_path=config.transport)
            except MirrorError as e:
                report.add("transport", False, str(e), import_path=config.transport)

        if session is None:
            authenticated = False
            report.add("authenticated", False, "no transport")
        else:
            authenticated = session.is_authenticated()
            report.add("authenticated", authenticated, "" if authenticated else "not paired")

        if connect and authenticated:
            try:
                session.connect()
                connected = session.is_connected()
                report.add("connection", connected, "" if connected else "connect returned without a session")
            except MirrorError as e:
                report.add("connection", False, str(e))
    finally:
        if session is not None:
            session.close()
        if store is not None:
            store.close()

    return report
