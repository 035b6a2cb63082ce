"""Configuration management for the bulk-operations benchmark harness."""

import os
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from .common.enums import StorageScheme

_PREFIX_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
_CLUSTER_SETTING_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z0-9_]+)*$")
# URL schemes store archives can be copied from (gsutil, aws, azcopy)
ARCHIVE_URL_SCHEMES = ("gs", "s3", "https")


class ClusterSpec(BaseModel):
    """Shape of the cluster a scenario runs against.

    Immutable once handed to ``BenchmarkCluster``.
    """

    model_config = ConfigDict(frozen=True)

    # Number of database nodes to provision
    nodes: int
    # Prepended to every resource Terraform creates for this run
    prefix: str
    # Disk size per node in GB; 0 keeps the Terraform default. Terraform only
    # accepts GCE disk sizes in GB.
    disk_size_gb: int = 0
    # Object-store URL holding per-node store archives; empty skips seeding
    store_url: str = ""
    # True: every node lists every node in --join. False: node 0 bootstraps
    # the cluster and each later node joins its predecessor.
    skip_cluster_init: bool = False

    @field_validator("nodes")
    @classmethod
    def validate_nodes(cls, v: int) -> int:
        """Ensure node count is positive."""
        if v < 1:
            raise ValueError(f"nodes must be positive (got {v})")
        return v

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Ensure prefix is usable as a cloud resource name component."""
        if not _PREFIX_PATTERN.match(v):
            raise ValueError(
                f"prefix '{v}' must start with a lowercase letter and contain "
                "only lowercase letters, digits, and hyphens"
            )
        return v

    @field_validator("store_url")
    @classmethod
    def validate_store_url(cls, v: str) -> str:
        """Reject archives no node-side copy tool can read."""
        if v and urlsplit(v).scheme not in ARCHIVE_URL_SCHEMES:
            raise ValueError(
                f"store_url '{v}' must use one of: {', '.join(ARCHIVE_URL_SCHEMES)}"
            )
        return v

    @field_validator("disk_size_gb")
    @classmethod
    def validate_disk_size(cls, v: int) -> int:
        """Ensure disk size is non-negative."""
        if v < 0:
            raise ValueError(f"disk_size_gb must be non-negative (got {v})")
        return v

    @property
    def seeds_from_archive(self) -> bool:
        return bool(self.store_url)


class EnvironmentConfig(BaseModel):
    """Where and how clusters are provisioned."""

    provider: str = "gcp"
    # Terraform configuration used as a read-only template; defaults to
    # infra/<provider>
    terraform_dir: str | None = None
    ssh_private_key_path: str | None = None
    ssh_user: str = "ubuntu"
    ssh_port: int = 22
    results_dir: str = "results"

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Ensure provider is one Terraform configs exist for."""
        valid_providers = {"aws", "gcp", "azure"}
        v = v.lower()
        if v not in valid_providers:
            raise ValueError(
                f"Unknown provider '{v}'. Supported: {', '.join(sorted(valid_providers))}"
            )
        return v

    @property
    def terraform_source_dir(self) -> Path:
        return Path(self.terraform_dir or f"infra/{self.provider}")


class HarnessSettings(BaseModel):
    """Knobs of the cluster lifecycle that used to be hard-coded constants."""

    # Bounded clock offset passed to every node as --max-offset
    max_offset: str = "1s"
    # Node-local directory the database stores its data in
    data_dir: str = "/mnt/data0"
    gossip_timeout_s: float = 120.0
    gossip_poll_interval_s: float = 1.0
    # Cluster settings applied through node 0 once the cluster is healthy
    cluster_settings: dict[str, bool | int | str] = {"enterprise.enabled": True}
    sql_port: int = 26257
    http_port: int = 8080
    sql_user: str = "root"
    supervisor_conf: str = "supervisor.conf"
    # Limit on archive copies run on the nodes; None lets them run to completion
    remote_command_timeout_s: float | None = None

    @field_validator("gossip_timeout_s")
    @classmethod
    def validate_gossip_timeout(cls, v: float) -> float:
        """Ensure the convergence wait is bounded and positive."""
        if v <= 0:
            raise ValueError(f"gossip_timeout_s must be positive (got {v})")
        return v

    @field_validator("gossip_poll_interval_s")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"gossip_poll_interval_s must be non-negative (got {v})")
        return v

    @field_validator("cluster_settings")
    @classmethod
    def validate_cluster_settings(
        cls, v: dict[str, bool | int | str]
    ) -> dict[str, bool | int | str]:
        """Setting names are spliced into SQL, so they must look like names."""
        for name in v:
            if not _CLUSTER_SETTING_PATTERN.match(name):
                raise ValueError(f"Invalid cluster setting name '{name}'")
        return v


class DestinationConfig(BaseModel):
    """Object-store location a scenario backs up to or restores from."""

    scheme: StorageScheme = StorageScheme.GS
    host: str = ""

    @model_validator(mode="after")
    def validate_host(self) -> "DestinationConfig":
        """Azure takes its container from the environment; the rest need a host."""
        if self.scheme not in (StorageScheme.AZURE, StorageScheme.NODELOCAL):
            if not self.host:
                raise ValueError(f"destination scheme '{self.scheme}' requires a host")
        return self


class ScenarioOverrides(BaseModel):
    """Per-scenario overrides of the built-in defaults."""

    nodes: int | None = None
    prefix: str | None = None
    disk_size_gb: int | None = None
    store_url: str | None = None
    skip_cluster_init: bool | None = None
    destination: DestinationConfig | None = None
    source_uri: str | None = None
    seed: int | None = None
    row_payload_size: int | None = None

    @field_validator("row_payload_size")
    @classmethod
    def validate_payload_size(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError(f"row_payload_size must be positive (got {v})")
        return v


class BulkbenchConfig(BaseModel):
    """Main harness configuration."""

    environment: EnvironmentConfig = EnvironmentConfig()
    harness: HarnessSettings = HarnessSettings()
    scenarios: dict[str, ScenarioOverrides] = {}

    @field_validator("scenarios")
    @classmethod
    def validate_scenarios(
        cls, v: dict[str, ScenarioOverrides]
    ) -> dict[str, ScenarioOverrides]:
        """Ensure overrides only target known scenarios."""
        from .scenarios import SCENARIO_IMPLEMENTATIONS

        unknown = set(v) - set(SCENARIO_IMPLEMENTATIONS)
        if unknown:
            raise ValueError(
                f"Unknown scenario(s) {', '.join(sorted(unknown))}. "
                f"Supported: {', '.join(sorted(SCENARIO_IMPLEMENTATIONS))}"
            )
        return v

    @model_validator(mode="after")
    def validate_cluster_overrides(self) -> "BulkbenchConfig":
        """Ensure overrides still describe a valid cluster for each scenario."""
        from .scenarios import create_scenario

        for name, overrides in self.scenarios.items():
            try:
                create_scenario(name, overrides, environ={}).cluster_spec()
            except ValidationError as e:
                raise ValueError(f"scenario '{name}': {e}") from e
        return self

    def overrides_for(self, scenario_name: str) -> ScenarioOverrides:
        return self.scenarios.get(scenario_name) or ScenarioOverrides()


def load_config(path: str | Path | None = None) -> BulkbenchConfig:
    """Load and validate harness configuration from a YAML file.

    Without a path the built-in defaults are used.
    """
    if path is None:
        return BulkbenchConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        raw_config = yaml.safe_load(f) or {}

    raw_config = _expand_env_vars(raw_config)

    try:
        return BulkbenchConfig(**raw_config)
    except Exception as e:
        raise ValueError(f"Invalid configuration: {e}") from e


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
