"""Archive and backup locations in cloud object storage.

Every benchmark run writes to a fresh location:

    <scheme>://<host>/<ScenarioName>/<RFC3339Nano timestamp>-<iterations>

so two runs never collide, even at the same iteration count.
"""

from __future__ import annotations

import dataclasses
import os
import shlex
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote, urlencode, urlsplit

from ..common.enums import StorageScheme
from ..config import ARCHIVE_URL_SCHEMES, DestinationConfig

AZURE_ACCOUNT_NAME_PARAM = "AZURE_ACCOUNT_NAME"
AZURE_ACCOUNT_KEY_PARAM = "AZURE_ACCOUNT_KEY"
AWS_ACCESS_KEY_PARAM = "AWS_ACCESS_KEY_ID"
AWS_SECRET_PARAM = "AWS_SECRET_ACCESS_KEY"

_SECRET_PARAMS = {AZURE_ACCOUNT_KEY_PARAM, AWS_SECRET_PARAM}


class CredentialsError(ValueError):
    """Raised when an off-cluster location needs credentials that are not set."""


@dataclass(frozen=True)
class ArchiveLocation:
    """An object-store URI, optionally carrying credentials as query params."""

    scheme: StorageScheme
    host: str
    path: str = ""
    params: tuple[tuple[str, str], ...] = ()

    def with_path(self, path: str) -> ArchiveLocation:
        return dataclasses.replace(self, path=path.lstrip("/"))

    def timestamped(
        self, scenario_name: str, iterations: int, now_ns: int | None = None
    ) -> ArchiveLocation:
        """Return a copy pointing at a fresh per-run path."""
        return self.with_path(timestamped_path(scenario_name, iterations, now_ns))

    def uri(self, redact: bool = False) -> str:
        url = f"{self.scheme.value}://{self.host}"
        if self.path:
            url += "/" + quote(self.path, safe="/:-._~")
        if self.params:
            params = sorted(self.params)
            if redact:
                params = [
                    (key, "redacted" if key in _SECRET_PARAMS else value)
                    for key, value in params
                ]
            url += "?" + urlencode(params)
        return url

    def __str__(self) -> str:
        return self.uri(redact=True)


def rfc3339_nano(ns: int) -> str:
    """Format a UNIX timestamp in nanoseconds as RFC 3339 in UTC.

    Fractional seconds keep nanosecond precision with trailing zeros trimmed,
    e.g. ``2017-05-04T19:03:11.12345Z``.
    """
    seconds, fraction = divmod(ns, 1_000_000_000)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%S"
    )
    if fraction:
        stamp += "." + f"{fraction:09d}".rstrip("0")
    return stamp + "Z"


def timestamped_path(
    scenario_name: str, iterations: int, now_ns: int | None = None
) -> str:
    if now_ns is None:
        now_ns = time.time_ns()
    return f"{scenario_name}/{rfc3339_nano(now_ns)}-{iterations}"


def azure_location_from_env(
    environ: Mapping[str, str] | None = None,
) -> ArchiveLocation:
    """Build an Azure location from AZURE_CONTAINER and account credentials."""
    env = os.environ if environ is None else environ
    container = env.get("AZURE_CONTAINER", "")
    account_name = env.get("AZURE_ACCOUNT_NAME", "")
    account_key = env.get("AZURE_ACCOUNT_KEY", "")
    if not (container and account_name and account_key):
        raise CredentialsError(
            "env variables AZURE_CONTAINER, AZURE_ACCOUNT_NAME, AZURE_ACCOUNT_KEY must be set"
        )

    return ArchiveLocation(
        scheme=StorageScheme.AZURE,
        host=container,
        params=(
            (AZURE_ACCOUNT_NAME_PARAM, account_name),
            (AZURE_ACCOUNT_KEY_PARAM, account_key),
        ),
    )


def destination_location(
    destination: DestinationConfig, environ: Mapping[str, str] | None = None
) -> ArchiveLocation:
    """Resolve a configured destination, pulling credentials from the environment."""
    env = os.environ if environ is None else environ

    if destination.scheme == StorageScheme.AZURE:
        location = azure_location_from_env(env)
        if destination.host:
            location = dataclasses.replace(location, host=destination.host)
        return location

    if destination.scheme == StorageScheme.S3:
        access_key = env.get("AWS_ACCESS_KEY_ID", "")
        secret = env.get("AWS_SECRET_ACCESS_KEY", "")
        if bool(access_key) != bool(secret):
            raise CredentialsError(
                "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together"
            )
        params: tuple[tuple[str, str], ...] = ()
        if access_key:
            params = ((AWS_ACCESS_KEY_PARAM, access_key), (AWS_SECRET_PARAM, secret))
        return ArchiveLocation(StorageScheme.S3, destination.host, params=params)

    return ArchiveLocation(destination.scheme, destination.host)


def archive_copy_command(store_url: str, node: int, data_dir: str) -> str:
    """Shell command that copies node ``node``'s store archive into ``data_dir``.

    Archives are laid out as ``<store_url>/node<i>/`` holding one node's
    store directory each. Azure archives are addressed by their blob
    endpoint, ``https://<account>.blob.core.windows.net/<container>/...``.
    """
    base = store_url.rstrip("/")
    scheme = urlsplit(base).scheme
    target = shlex.quote(data_dir)

    if scheme == StorageScheme.GS.value:
        return f"gsutil -m cp -r {shlex.quote(f'{base}/node{node}/*')} {target}"
    if scheme == StorageScheme.S3.value:
        return f"aws s3 cp --recursive {shlex.quote(f'{base}/node{node}/')} {target}"
    if scheme == "https":
        return (
            f"azcopy copy {shlex.quote(f'{base}/node{node}/*')} {target} --recursive"
        )
    raise ValueError(
        f"Unsupported archive scheme in store URL: {store_url} "
        f"(expected one of {', '.join(ARCHIVE_URL_SCHEMES)})"
    )
