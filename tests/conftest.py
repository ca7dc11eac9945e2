"""Shared test fixtures."""

import asyncio
import inspect
from unittest.mock import patch

import pytest

from nc_migrate.api.entity_client import RemoteEntityClient
from nc_migrate.api.exceptions import NCentralAPIError
from nc_migrate.migration.catalog import DEFAULT_CATALOG
from nc_migrate.migration.progress import ProgressSink
from nc_migrate.migration.results import Scope
from nc_migrate.models import Record


class FakeEntityClient(RemoteEntityClient):
    """In-memory entity client serving records in small pages.

    Created records are appended to the client's own listing so a later
    run sees them.
    """

    def __init__(self, scope, records=None, page_size=2, first_id=1000):
        self.scope = scope
        self.page_size = page_size
        self.records = {
            entity_type: [dict(item) for item in items]
            for entity_type, items in (records or {}).items()
        }
        self.created = []
        self.list_calls = []
        self.fail_listing = set()
        self.fail_create = {}
        self.on_create = None
        self.closed = False
        self._next_id = first_id

    async def list(self, entity_type, page):
        self.list_calls.append((entity_type, page))
        if entity_type in self.fail_listing:
            raise NCentralAPIError(
                f'Listing {entity_type.value} failed', status_code=503
            )

        items = self.records.get(entity_type, [])
        start = (page - 1) * self.page_size
        records = [
            Record(
                entity_type=entity_type,
                source_id=DEFAULT_CATALOG.source_id(entity_type, item),
                data=dict(item),
            )
            for item in items[start:start + self.page_size]
        ]
        return records, start + self.page_size < len(items)

    async def create(self, entity_type, record):
        if self.on_create is not None:
            result = self.on_create(entity_type, record)
            if inspect.isawaitable(result):
                await result

        error = self.fail_create.get((entity_type, record.source_id))
        if error is not None:
            raise error

        self.created.append(record)
        new_id = str(self._next_id)
        self._next_id += 1
        id_field = DEFAULT_CATALOG.descriptor(entity_type).id_fields[0]
        self.records.setdefault(entity_type, []).append(
            {**record.data, id_field: new_id}
        )
        return new_id

    def close(self):
        self.closed = True

    def created_of(self, entity_type):
        return [r for r in self.created if r.entity_type == entity_type]


class TimingOutSession:
    """aiohttp session whose requests all exceed the client timeout."""

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def post(self, *args, **kwargs):
        raise asyncio.TimeoutError()

    def request(self, *args, **kwargs):
        raise asyncio.TimeoutError()


class RecordingSink(ProgressSink):
    """Progress sink that keeps everything it receives."""

    def __init__(self):
        self.updates = []
        self.logs = []

    def on_progress(self, update):
        self.updates.append(update)

    def on_log(self, level, message):
        self.logs.append((level, message))


@pytest.fixture
def source_scope():
    return Scope(server_url='https://source.example.com', service_org_id=50)


@pytest.fixture
def dest_scope():
    return Scope(server_url='https://dest.example.com', service_org_id=60)


@pytest.fixture
def make_client():
    """Factory for in-memory entity clients."""
    return FakeEntityClient


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def timing_out_aiohttp():
    """Make every aiohttp request time out."""
    with patch('aiohttp.ClientSession', TimingOutSession):
        yield
