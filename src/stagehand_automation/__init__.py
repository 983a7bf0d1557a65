"""Stagehand: apply and roll back host configuration exactly once."""

from .markers import MarkerStore
from .operations import build_operations
from .runner import OperationRunner

__all__ = ["OperationRunner", "MarkerStore", "build_operations"]
