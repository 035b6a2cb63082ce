"""Benchmark harness for bulk BACKUP/RESTORE operations on ephemeral clusters."""

__version__ = "0.1.0"
