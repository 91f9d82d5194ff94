"""
Configuration file management.

Provides the typed KEY=VALUE entry model and the atomic configuration store.
"""

from .entries import ConfigurationFile, KeyValueEntry
from .store import (
    ConfigurationStore,
    GenerationResult,
    MigrationReport,
    ValidationReport,
)

__all__ = [
    "ConfigurationFile",
    "KeyValueEntry",
    "ConfigurationStore",
    "GenerationResult",
    "MigrationReport",
    "ValidationReport",
]
