"""Public API for the Plane task importer."""

from .client import Config, PlaneClient, PlaneError, PlaneHTTPError
from .importer import Importer, ImportSummary, purge_issues
from .mutate import RetryingMutator
from .records import TaskRecord, group_by_hierarchy, parse_task_data
from .translate import FieldTranslator, StateCatalog

__all__ = [
    "Config",
    "FieldTranslator",
    "ImportSummary",
    "Importer",
    "PlaneClient",
    "PlaneError",
    "PlaneHTTPError",
    "RetryingMutator",
    "StateCatalog",
    "TaskRecord",
    "group_by_hierarchy",
    "parse_task_data",
    "purge_issues",
]
