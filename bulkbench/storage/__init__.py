"""Object-store locations for store archives and backups."""

from .uri import (
    ArchiveLocation,
    CredentialsError,
    archive_copy_command,
    azure_location_from_env,
    destination_location,
    rfc3339_nano,
    timestamped_path,
)

__all__ = [
    "ArchiveLocation",
    "CredentialsError",
    "archive_copy_command",
    "azure_location_from_env",
    "destination_location",
    "rfc3339_nano",
    "timestamped_path",
]
