"""Persistent migration state."""

from .store import MigrationStateStore

__all__ = ['MigrationStateStore']
