"""
Application layer: catalog operations, deletion, session resolution,
query pipeline and input debouncing.
"""

from .catalog import CatalogRepository, normalize_email
from .debounce import Debouncer
from .deletion import DeletionReconciler, DeletionResult, StepOutcome, storage_object_name
from .session import SessionResolver

__all__ = [
    "CatalogRepository",
    "normalize_email",
    "Debouncer",
    "DeletionReconciler",
    "DeletionResult",
    "StepOutcome",
    "storage_object_name",
    "SessionResolver",
]
