from __future__ import annotations


class CultureMapError(Exception):
    """Base class for culturemap errors surfaced to callers."""


class SnapshotUnavailable(CultureMapError):
    """A record set could not be read from storage."""
    def __init__(self, record_set: str, message: str = ""):
        detail = f"Could not load {record_set}"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)
        self.record_set = record_set
