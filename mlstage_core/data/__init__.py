"""Data module - Schemas, datasets and record validation."""

from mlstage_core.data.schema import ColumnType, Field, Schema
from mlstage_core.data.dataset import Dataset
from mlstage_core.data.validator import RecordValidator, ValidationResult

__all__ = [
    "ColumnType", "Field", "Schema",
    "Dataset",
    "RecordValidator", "ValidationResult",
]
