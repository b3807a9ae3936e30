"""
Shared fixtures and an in-memory transport for tests.
"""
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from wamirror.core.config import MirrorConfig
from wamirror.core.db import MessageStore
from wamirror.core.errors import TransportError
from wamirror.core.models import SendReceipt, UploadResult
from wamirror.services.identity import IdentityResolver
from wamirror.services.ingestion import IngestionPipeline, SyncSignal
from wamirror.transport.base import Transport

OWN_USER = "15550000000"


class FakeTransport(Transport):
    """Transport double recording calls and serving canned directory data."""

    def __init__(self, config=None, authenticated=True):
        super().__init__(config or MirrorConfig(store_dir=Path(tempfile.gettempdir())))
        self.authenticated = authenticated
        self.connected = False
        self.handler = None
        self.contacts = {}
        self.groups = {}
        self.fail_lookups = False
        self.on_connect = None
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.sent = []
        self.uploads = []
        self.media = {}

    def connect(self):
        self.connect_calls += 1
        self.connected = True
        if self.on_connect:
            self.on_connect(self)

    def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    def is_connected(self):
        return self.connected

    def is_authenticated(self):
        return self.authenticated

    def own_user(self):
        return OWN_USER

    def set_event_handler(self, handler):
        self.handler = handler

    def emit(self, event):
        self.handler(event)

    def get_contact(self, identifier):
        if self.fail_lookups:
            raise TransportError("directory unavailable")
        return self.contacts.get(identifier)

    def list_contacts(self):
        if self.fail_lookups:
            raise TransportError("directory unavailable")
        return dict(self.contacts)

    def get_group_info(self, identifier):
        if self.fail_lookups:
            raise TransportError("directory unavailable")
        return self.groups.get(identifier)

    def upload(self, data, media_type):
        self.uploads.append((data, media_type))
        return UploadResult(
            url=f"https://mmg.example.net/{len(self.uploads)}",
            direct_path=f"/v/{len(self.uploads)}",
            media_key=b"key",
            file_sha256=b"sha",
            file_enc_sha256=b"enc",
            file_length=len(data),
        )

    def download(self, media):
        return self.media[media.url]

    def send_message(self, recipient, message):
        self.sent.append((recipient, message))
        return SendReceipt(
            message_id=f"SENT{len(self.sent)}",
            chat_identifier=recipient,
            timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )


@pytest.fixture
def temp_store():
    """Create a temporary store for testing."""
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    store = MessageStore(path)
    yield store
    store.close()
    for suffix in ('', '-wal', '-shm'):
        if os.path.exists(path + suffix):
            os.unlink(path + suffix)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def resolver(temp_store, transport):
    return IdentityResolver(temp_store, transport)


@pytest.fixture
def signal():
    return SyncSignal()


@pytest.fixture
def pipeline(temp_store, resolver, transport, signal):
    return IngestionPipeline(temp_store, resolver, transport, signal)


@pytest.fixture
def config(tmp_path):
    return MirrorConfig(store_dir=tmp_path / "store")
