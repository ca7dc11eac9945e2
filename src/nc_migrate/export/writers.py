"""CSV and JSON writers for exported records."""

import csv
import json
from pathlib import Path
from typing import Any, Callable, Dict, List

from ..models.record import EntityType, Record

LIST_SEPARATOR = '; '
LEADING_COLUMNS = ['entityType', 'sourceId']

RecordsByType = Dict[EntityType, List[Record]]


def _scalar(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def flatten_value(value: Any) -> str:
    """Render a field value as a single CSV cell.

    Lists are joined with ``"; "``; nested objects are JSON encoded.
    """
    if isinstance(value, (list, tuple)):
        return LIST_SEPARATOR.join(_scalar(item) for item in value)
    return _scalar(value)


def csv_columns(records_by_type: RecordsByType) -> List[str]:
    """Leading columns followed by the union of record fields in first-seen order."""
    columns = dict.fromkeys(LEADING_COLUMNS)
    for records in records_by_type.values():
        for record in records:
            for field in record.data:
                columns.setdefault(field)
    return list(columns)


def write_csv(path: Path, records_by_type: RecordsByType) -> int:
    """Write all records into one CSV table.

    Returns:
        Number of rows written
    """
    columns = csv_columns(records_by_type)
    rows = 0
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=columns, restval='')
        writer.writeheader()
        for entity_type, records in records_by_type.items():
            for record in records:
                row = {field: flatten_value(value) for field, value in record.data.items()}
                # Identity columns win over same-named payload fields
                row['entityType'] = entity_type.value
                row['sourceId'] = record.source_id
                writer.writerow(row)
                rows += 1
    return rows


def write_json(path: Path, records_by_type: RecordsByType) -> int:
    """Write records as an object keyed by entity type.

    Returns:
        Number of records written
    """
    document = {
        entity_type.value: [record.data for record in records]
        for entity_type, records in records_by_type.items()
    }
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2, ensure_ascii=False)
        f.write('\n')
    return sum(len(records) for records in records_by_type.values())


WRITERS: Dict[str, Callable[[Path, RecordsByType], int]] = {
    'csv': write_csv,
    'json': write_json,
}
