"""Bulk task creation from spreadsheet rows."""

from zentao_toolkit.tasks.bulk_create import (
    BulkTaskCreator,
    CreationOutcome,
    CreationPhase,
    CreationRequest,
    EnrichmentSummary,
    IllegalTransitionError,
    composite_key,
)
from zentao_toolkit.tasks.rows import RowParseError, SourceRow, parse_rows, read_rows_file

__all__ = [
    "BulkTaskCreator",
    "CreationOutcome",
    "CreationPhase",
    "CreationRequest",
    "EnrichmentSummary",
    "IllegalTransitionError",
    "RowParseError",
    "SourceRow",
    "composite_key",
    "parse_rows",
    "read_rows_file",
]
