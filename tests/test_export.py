"""Tests for the export engine and file writers."""

import asyncio
import csv
import json

import pytest

from nc_migrate.config.config import Config
from nc_migrate.export.engine import (
    ExportEngine,
    ExportRequest,
    selected_export_types,
)
from nc_migrate.export.writers import csv_columns, flatten_value, write_csv, write_json
from nc_migrate.migration.exceptions import ConfigurationError, ConflictError
from nc_migrate.migration.results import RunOutcome, RunState
from nc_migrate.models import EntityType, Record

RECORDS = {
    EntityType.CUSTOMER: [
        {'customerId': 1, 'customerName': 'Acme', 'city': 'Berlin'},
        {'customerId': 2, 'customerName': 'Globex'},
        {'customerId': 3, 'customerName': 'Initech'},
    ],
    EntityType.USER: [
        {'userId': 31, 'userName': 'alice', 'roleIds': [21, 22], 'isEnabled': True},
    ],
    EntityType.DEVICE: [
        {'deviceId': 7, 'longName': 'srv01', 'osInfo': {'name': 'Linux'}},
    ],
}


def _read_csv(path):
    with open(path, newline='', encoding='utf-8') as f:
        return list(csv.DictReader(f))


def _request(scope, output_dir, *types, formats=('csv',)):
    return ExportRequest(
        selected_types=frozenset(types),
        scope=scope,
        output_dir=str(output_dir),
        formats=list(formats),
    )


class TestWriters:
    """Test CSV and JSON rendering."""

    def test_flatten_value(self):
        assert flatten_value(None) == ''
        assert flatten_value(True) == 'true'
        assert flatten_value(12) == '12'
        assert flatten_value([1, 2, 3]) == '1; 2; 3'
        assert flatten_value({'name': 'Linux'}) == '{"name": "Linux"}'
        assert flatten_value([{'a': 1}, 'b']) == '{"a": 1}; b'

    def test_csv_columns_first_seen_order(self):
        records = {
            EntityType.CUSTOMER: [
                Record(
                    entity_type=EntityType.CUSTOMER,
                    source_id='1',
                    data={'customerId': 1, 'customerName': 'Acme'},
                ),
                Record(
                    entity_type=EntityType.CUSTOMER,
                    source_id='2',
                    data={'city': 'Berlin', 'customerId': 2},
                ),
            ]
        }

        assert csv_columns(records) == [
            'entityType',
            'sourceId',
            'customerId',
            'customerName',
            'city',
        ]

    def test_write_csv(self, tmp_path):
        path = tmp_path / 'out.csv'
        records = {
            EntityType.USER: [
                Record(
                    entity_type=EntityType.USER,
                    source_id='31',
                    data={'userName': 'alice', 'roleIds': [21, 22]},
                )
            ],
            EntityType.DEVICE: [
                Record(
                    entity_type=EntityType.DEVICE,
                    source_id='7',
                    data={'longName': 'srv01', 'entityType': 'server'},
                )
            ],
        }

        assert write_csv(path, records) == 2

        rows = _read_csv(path)
        assert rows[0]['entityType'] == 'user'
        assert rows[0]['roleIds'] == '21; 22'
        assert rows[0]['longName'] == ''
        assert rows[1]['entityType'] == 'device'
        assert rows[1]['sourceId'] == '7'

    def test_write_json(self, tmp_path):
        path = tmp_path / 'out.json'
        records = {
            EntityType.CUSTOMER: [
                Record(
                    entity_type=EntityType.CUSTOMER,
                    source_id='1',
                    data={'customerId': 1, 'customerName': 'Acmé'},
                )
            ]
        }

        assert write_json(path, records) == 1

        document = json.loads(path.read_text(encoding='utf-8'))
        assert document == {'customer': [{'customerId': 1, 'customerName': 'Acmé'}]}
        assert path.read_text(encoding='utf-8').endswith('\n')


class TestExportRequest:
    """Test export requests built from configuration."""

    def _config(self, **export):
        return Config(
            source={'url': 'https://source.example.com', 'jwt': 'a', 'service_org_id': 50},
            export=export,
        )

    def test_from_config(self):
        request = ExportRequest.from_config(self._config(users=False, devices=True))

        assert EntityType.DEVICE in request.selected_types
        assert EntityType.USER not in request.selected_types
        assert request.formats == ['csv']
        assert request.basename == 'nc_export'

    def test_overrides(self):
        request = ExportRequest.from_config(
            self._config(),
            types=[EntityType.SITE],
            output_dir='/tmp/out',
            formats=['JSON'],
        )

        assert request.selected_types == frozenset({EntityType.SITE})
        assert request.output_dir == '/tmp/out'
        assert request.formats == ['json']

    def test_invalid_format(self):
        with pytest.raises(ConfigurationError):
            ExportRequest.from_config(self._config(), formats=['xml'])

    def test_empty_selection(self):
        with pytest.raises(ConfigurationError):
            ExportRequest.from_config(self._config(), types=[])

    def test_selected_export_types(self):
        config = self._config(devices=True).export

        assert EntityType.DEVICE in selected_export_types(config)
        assert EntityType.DEVICE_PROPERTY not in selected_export_types(config)


class TestExportEngine:
    """Test export runs against an in-memory server."""

    @pytest.mark.asyncio
    async def test_export_all_formats(self, make_client, source_scope, tmp_path):
        engine = ExportEngine(make_client(source_scope, RECORDS))

        result = await engine.run(
            _request(
                source_scope,
                tmp_path,
                EntityType.USER,
                EntityType.CUSTOMER,
                EntityType.DEVICE,
                formats=('csv', 'json'),
            )
        )

        assert result.outcome == RunOutcome.COMPLETED
        assert engine.state == RunState.COMPLETED
        assert result.total_records == 5
        assert result.records_by_type[EntityType.CUSTOMER] == 3
        assert result.files_created == [
            str(tmp_path / 'nc_export.csv'),
            str(tmp_path / 'nc_export.json'),
        ]

        rows = _read_csv(tmp_path / 'nc_export.csv')
        assert [row['entityType'] for row in rows] == [
            'device',
            'customer',
            'customer',
            'customer',
            'user',
        ]
        assert rows[0]['osInfo'] == '{"name": "Linux"}'
        assert rows[4]['roleIds'] == '21; 22'

        document = json.loads((tmp_path / 'nc_export.json').read_text())
        assert list(document) == ['device', 'customer', 'user']
        assert document['customer'][0]['customerName'] == 'Acme'

    @pytest.mark.asyncio
    async def test_empty_selection_writes_nothing(
        self, make_client, source_scope, tmp_path
    ):
        engine = ExportEngine(make_client(source_scope, RECORDS))

        result = await engine.run(_request(source_scope, tmp_path / 'out'))

        assert result.outcome == RunOutcome.COMPLETED
        assert result.files_created == []
        assert not (tmp_path / 'out').exists()

    @pytest.mark.asyncio
    async def test_invalid_record_becomes_warning(
        self, make_client, source_scope, tmp_path
    ):
        records = {
            EntityType.CUSTOMER: [
                {'customerId': 1, 'customerName': 'Acme'},
                {'customerId': 2},
            ]
        }
        engine = ExportEngine(make_client(source_scope, records))

        result = await engine.run(_request(source_scope, tmp_path, EntityType.CUSTOMER))

        assert result.outcome == RunOutcome.PARTIAL
        assert result.total_records == 1
        assert len(result.warnings) == 1
        assert 'customer 2' in result.warnings[0]
        assert len(_read_csv(tmp_path / 'nc_export.csv')) == 1

    @pytest.mark.asyncio
    async def test_listing_failure_is_partial(
        self, make_client, source_scope, tmp_path, sink
    ):
        client = make_client(source_scope, RECORDS)
        client.fail_listing.add(EntityType.USER)
        engine = ExportEngine(client, sink=sink)

        result = await engine.run(
            _request(source_scope, tmp_path, EntityType.CUSTOMER, EntityType.USER)
        )

        assert result.outcome == RunOutcome.PARTIAL
        assert result.records_by_type == {EntityType.CUSTOMER: 3}
        assert 'users' in result.warnings[0]
        assert ('WARNING', result.warnings[0]) in sink.logs
        assert (tmp_path / 'nc_export.csv').exists()

    @pytest.mark.asyncio
    async def test_cancel_writes_no_files(
        self, make_client, source_scope, tmp_path, sink
    ):
        client = make_client(source_scope, RECORDS, page_size=1)
        engine = ExportEngine(client, sink=sink)
        original_list = client.list

        async def cancelling_list(entity_type, page):
            if page == 2:
                engine.cancel()
            return await original_list(entity_type, page)

        client.list = cancelling_list

        result = await engine.run(_request(source_scope, tmp_path, EntityType.CUSTOMER))

        assert result.outcome == RunOutcome.CANCELLED
        assert engine.state == RunState.CANCELLED
        assert result.files_created == []
        assert not (tmp_path / 'nc_export.csv').exists()

    @pytest.mark.asyncio
    async def test_task_cancelled_during_listing(
        self, make_client, source_scope, tmp_path
    ):
        client = make_client(source_scope, RECORDS)
        engine = ExportEngine(client)
        request = _request(source_scope, tmp_path, EntityType.CUSTOMER)
        original_list = client.list
        listing_started = asyncio.Event()

        async def hanging_list(entity_type, page):
            listing_started.set()
            await asyncio.Event().wait()

        client.list = hanging_list
        task = asyncio.ensure_future(engine.run(request))
        await listing_started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert engine.state == RunState.CANCELLED
        assert not (tmp_path / 'nc_export.csv').exists()

        client.list = original_list
        result = await engine.run(request)

        assert result.outcome == RunOutcome.COMPLETED
        assert result.total_records == 3

    @pytest.mark.asyncio
    async def test_write_failure(self, make_client, source_scope, tmp_path):
        blocker = tmp_path / 'blocker'
        blocker.write_text('not a directory')
        engine = ExportEngine(make_client(source_scope, RECORDS))

        result = await engine.run(
            _request(source_scope, blocker / 'out', EntityType.CUSTOMER)
        )

        assert result.outcome == RunOutcome.FAILED
        assert result.error

    @pytest.mark.asyncio
    async def test_start_while_running(self, make_client, source_scope, tmp_path):
        client = make_client(source_scope, RECORDS)
        engine = ExportEngine(client)
        request = _request(source_scope, tmp_path, EntityType.CUSTOMER)
        original_list = client.list
        conflicts = []

        async def reentrant_list(entity_type, page):
            try:
                await engine.run(request)
            except ConflictError as e:
                conflicts.append(e)
            return await original_list(entity_type, page)

        client.list = reentrant_list

        result = await engine.run(request)

        assert conflicts
        assert result.outcome == RunOutcome.COMPLETED

    @pytest.mark.asyncio
    async def test_scope_mismatch(self, make_client, source_scope, dest_scope, tmp_path):
        engine = ExportEngine(make_client(source_scope, RECORDS))

        with pytest.raises(ConfigurationError):
            await engine.run(_request(dest_scope, tmp_path, EntityType.CUSTOMER))
        assert engine.state == RunState.IDLE

    @pytest.mark.asyncio
    async def test_progress(self, make_client, source_scope, tmp_path, sink):
        engine = ExportEngine(make_client(source_scope, RECORDS), sink=sink)

        await engine.run(
            _request(source_scope, tmp_path, EntityType.CUSTOMER, EntityType.USER)
        )

        phases = [u.phase for u in sink.updates]
        assert phases[0] == 'Starting'
        assert 'Customers' in phases
        assert 'Users' in phases
        assert sink.updates[-1].phase == 'Complete'
        assert sink.updates[-1].percent == 100.0
