"""Shared enums for the bulkbench harness."""

from .enums import FailureStage, StorageScheme

__all__ = ["FailureStage", "StorageScheme"]
