import pytest
from pydantic import ValidationError

from bulkbench.common.enums import StorageScheme
from bulkbench.config import (
    BulkbenchConfig,
    ClusterSpec,
    HarnessSettings,
    ScenarioOverrides,
    load_config,
)


def test_defaults_without_config_file():
    config = load_config()

    assert config.environment.provider == "gcp"
    assert config.harness.max_offset == "1s"
    assert config.harness.gossip_timeout_s == 120.0
    assert config.harness.cluster_settings == {"enterprise.enabled": True}
    assert config.overrides_for("restore-big") == ScenarioOverrides()


@pytest.mark.parametrize("nodes", [0, -3])
def test_cluster_spec_rejects_non_positive_nodes(nodes):
    with pytest.raises(ValidationError, match="nodes must be positive"):
        ClusterSpec(nodes=nodes, prefix="restore")


@pytest.mark.parametrize("prefix", ["", "Restore", "1restore", "re_store"])
def test_cluster_spec_rejects_bad_prefix(prefix):
    with pytest.raises(ValidationError):
        ClusterSpec(nodes=1, prefix=prefix)


def test_cluster_spec_is_frozen():
    spec = ClusterSpec(nodes=3, prefix="restore")

    with pytest.raises(ValidationError):
        spec.nodes = 4
    assert not spec.seeds_from_archive
    assert ClusterSpec(nodes=1, prefix="x", store_url="gs://b/a").seeds_from_archive


def test_invalid_cluster_setting_name():
    with pytest.raises(ValidationError, match="Invalid cluster setting"):
        HarnessSettings(cluster_settings={"x; DROP DATABASE bench": True})


def test_load_yaml_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("BENCH_BUCKET", "my-bucket")
    config_file = tmp_path / "bulkbench.yaml"
    config_file.write_text(
        """
environment:
  provider: AWS
  results_dir: out
harness:
  gossip_timeout_s: 30
scenarios:
  restore-big:
    nodes: 5
    destination:
      scheme: s3
      host: ${BENCH_BUCKET}
"""
    )

    config = load_config(config_file)

    assert config.environment.provider == "aws"
    assert config.harness.gossip_timeout_s == 30
    overrides = config.overrides_for("restore-big")
    assert overrides.nodes == 5
    assert overrides.destination.scheme == StorageScheme.S3
    assert overrides.destination.host == "my-bucket"


def test_unknown_scenario_override_is_rejected(tmp_path):
    config_file = tmp_path / "bulkbench.yaml"
    config_file.write_text("scenarios:\n  restore-huge:\n    nodes: 4\n")

    with pytest.raises(ValueError, match="restore-huge"):
        load_config(config_file)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_empty_config_file_uses_defaults(tmp_path):
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("")

    assert load_config(config_file) == BulkbenchConfig()


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"nodes": 0}, "nodes must be positive"),
        ({"prefix": "Bad_Prefix"}, "must start with a lowercase letter"),
        ({"store_url": "ftp://host/stores"}, "store_url"),
    ],
)
def test_overrides_must_describe_a_valid_cluster(overrides, message):
    with pytest.raises(ValidationError, match=message):
        BulkbenchConfig(scenarios={"restore-2tb": ScenarioOverrides(**overrides)})


def test_invalid_override_reported_by_load_config(tmp_path):
    config_file = tmp_path / "bulkbench.yaml"
    config_file.write_text("scenarios:\n  backup-2tb:\n    nodes: 0\n")

    with pytest.raises(ValueError, match="scenario 'backup-2tb'"):
        load_config(config_file)


@pytest.mark.parametrize(
    "store_url",
    ["gs://bucket/stores", "s3://bucket/stores", "https://acct.blob.core.windows.net/c/s"],
)
def test_store_url_accepts_copyable_schemes(store_url):
    assert ClusterSpec(nodes=1, prefix="x", store_url=store_url).seeds_from_archive


@pytest.mark.parametrize("store_url", ["azure://container/stores", "/local/stores"])
def test_store_url_rejects_other_schemes(store_url):
    with pytest.raises(ValidationError, match="store_url"):
        ClusterSpec(nodes=1, prefix="x", store_url=store_url)
