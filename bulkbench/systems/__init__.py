"""SQL access to the database under test."""

from .sql import SQLRunner, connect, reported_data_size

__all__ = ["SQLRunner", "connect", "reported_data_size"]
