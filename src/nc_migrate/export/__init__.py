"""Export of N-central entities to CSV and JSON files."""

from .engine import ExportEngine, ExportRequest, ExportResult

__all__ = ['ExportEngine', 'ExportRequest', 'ExportResult']
