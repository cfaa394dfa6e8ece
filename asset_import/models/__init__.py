"""Domain models for the asset spreadsheet importer.

This package contains the value objects passed between the header mapper,
asset grouper, validator and import orchestrator.
"""

from .asset_group import (
    AssetGroup,
    Conflict,
    GroupingInfo,
    GroupingPreview,
    GroupingResult,
    GroupingSummary,
    PeripheralRecord,
)
from .config_models import ApiConfig, ImportConfig
from .error_record import ErrorRecord
from .header_mapping import CanonicalField, HeaderMapping, MappingValidation
from .import_result import ImportResult, NewOptions, RecordResult
from .validation import RowErrors, ValidationError, ValidationSummary

__all__ = [
    # Configuration models
    "ApiConfig",
    "ImportConfig",
    # Header mapping
    "CanonicalField",
    "HeaderMapping",
    "MappingValidation",
    # Grouping
    "AssetGroup",
    "Conflict",
    "GroupingInfo",
    "GroupingPreview",
    "GroupingResult",
    "GroupingSummary",
    "PeripheralRecord",
    # Validation
    "RowErrors",
    "ValidationError",
    "ValidationSummary",
    # API results
    "ImportResult",
    "NewOptions",
    "RecordResult",
    # Logging
    "ErrorRecord",
]
