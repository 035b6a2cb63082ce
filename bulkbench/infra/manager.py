"""Terraform-provisioned clusters driven over SSH."""

import json
import os
import shlex
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import EnvironmentConfig, HarnessSettings
from ..debug import debug_log_result, debug_print
from ..util import Timer, ensure_directory, safe_command, save_json
from .cluster import ClusterError
from .gossip import count_gossip_peers

# Terraform's view of the cluster after apply
PUBLIC_IPS_OUTPUT = "instance_public_ips"
PRIVATE_IPS_OUTPUT = "instance_private_ips"
# Upper bound on a single gossip status request
GOSSIP_STATUS_TIMEOUT_S = 30


@dataclass
class InfraResult:
    """Result of an infrastructure operation."""

    success: bool
    message: str
    error: str | None = None
    outputs: dict[str, Any] | None = None


class InfraManager:
    """Runs Terraform for one resource prefix in an isolated state directory.

    The Terraform configuration in ``environment.terraform_source_dir`` is a
    read-only template; it is copied into ``results/<prefix>/terraform`` so
    that clusters with different prefixes never share state.
    """

    def __init__(self, prefix: str, environment: EnvironmentConfig):
        self.prefix = prefix
        self.environment = environment
        self.tf_source_dir = environment.terraform_source_dir
        self.project_state_dir = (
            Path(environment.results_dir) / prefix / "terraform"
        )

    def apply(self, tf_vars: dict[str, str]) -> InfraResult:
        """Create or resize infrastructure to match ``tf_vars``."""
        with Timer("Infrastructure provisioning") as provision_timer:
            result = self._run_terraform_command("apply", tf_vars, ["-auto-approve"])

        if result.success:
            result.outputs = self.outputs()
            self._save_provisioning_timing(provision_timer.elapsed)
        return result

    def destroy(self) -> InfraResult:
        """Destroy all infrastructure created under this prefix."""
        return self._run_terraform_command(
            "destroy", {"prefix": self.prefix}, ["-auto-approve"]
        )

    def outputs(self) -> dict[str, Any]:
        """Return ``terraform output -json`` values, unwrapped."""
        result = safe_command(
            f"terraform -chdir={shlex.quote(str(self.project_state_dir))} output -no-color -json",
            timeout=60,
        )
        if not result["success"] or not result["stdout"]:
            print(
                f"Warning: terraform output failed: {result.get('stderr', 'Unknown error')}"
            )
            return {}

        try:
            raw_outputs = json.loads(result["stdout"])
        except json.JSONDecodeError as e:
            print(f"Warning: Failed to parse terraform outputs: {e}")
            return {}

        # terraform output -json wraps each value as {"value": ..., "type": ...}
        return {
            key: output["value"] if isinstance(output, dict) and "value" in output else output
            for key, output in raw_outputs.items()
        }

    def _ensure_terraform_files_copied(self) -> None:
        """Copy the Terraform template into the per-prefix state directory."""
        if not self.tf_source_dir.exists():
            raise ClusterError(
                f"Infrastructure directory not found: {self.tf_source_dir}"
            )

        ensure_directory(self.project_state_dir)
        for source in self.tf_source_dir.iterdir():
            if source.is_file() and source.suffix in (".tf", ".sh", ".tpl"):
                dest = self.project_state_dir / source.name
                if not dest.exists():
                    shutil.copy2(source, dest)

    def _run_terraform_command(
        self,
        command: str,
        tf_vars: dict[str, str],
        args: list[str] | None = None,
    ) -> InfraResult:
        """Run a terraform command with init and ``-var`` arguments."""
        args = args or []
        self._ensure_terraform_files_copied()
        chdir = f"-chdir={shlex.quote(str(self.project_state_dir))}"

        if not (self.project_state_dir / ".terraform").exists():
            init_result = safe_command(f"terraform {chdir} init -no-color", timeout=300)
            if not init_result["success"]:
                return InfraResult(
                    success=False,
                    message="Terraform init failed",
                    error=init_result["stderr"],
                )

        var_args = []
        for key, value in tf_vars.items():
            var_args.extend(["-var", shlex.quote(f"{key}={value}")])

        full_command = ["terraform", chdir, command, "-no-color"] + var_args + args
        debug_print(f"Command: {' '.join(full_command)}")
        result = safe_command(" ".join(full_command), timeout=3600)
        debug_log_result(result["success"], stderr=result["stderr"])

        if result["success"]:
            return InfraResult(
                success=True, message=f"Terraform {command} completed successfully"
            )
        return InfraResult(
            success=False,
            message=f"Terraform {command} failed",
            error=result["stderr"] or result["stdout"],
        )

    def _save_provisioning_timing(self, elapsed_seconds: float) -> None:
        """Save infrastructure provisioning timing next to the run results."""
        timing_file = (
            Path(self.environment.results_dir)
            / self.prefix
            / "infrastructure_provisioning.json"
        )
        try:
            save_json(
                {
                    "infrastructure_provisioning_s": elapsed_seconds,
                    "timestamp": datetime.now().isoformat(),
                },
                timing_file,
            )
        except OSError as e:
            print(f"Warning: Failed to save provisioning timing: {e}")


class CloudInstanceManager:
    """Runs commands on one cloud instance over SSH."""

    def __init__(
        self,
        public_ip: str,
        private_ip: str | None = None,
        ssh_private_key_path: str | None = None,
        ssh_user: str = "ubuntu",
        ssh_port: int = 22,
    ):
        self.public_ip = public_ip
        self.private_ip = private_ip
        self.ssh_private_key_path = ssh_private_key_path
        self.ssh_user = ssh_user
        self.ssh_port = ssh_port

    def _get_ssh_command_prefix(self) -> str:
        """Get SSH command prefix with key and port if configured."""
        ssh_opts = "-o StrictHostKeyChecking=no -o ConnectTimeout=5"

        if self.ssh_private_key_path:
            key_path = os.path.expanduser(self.ssh_private_key_path)
            ssh_opts += f" -i {shlex.quote(key_path)}"

        if self.ssh_port != 22:
            ssh_opts += f" -p {self.ssh_port}"

        return f"ssh {ssh_opts}"

    def run_remote_command(
        self, command: str, timeout: float | None = 300
    ) -> dict[str, Any]:
        """Run a command on the remote instance; ``timeout=None`` waits indefinitely.

        Returns:
            Dictionary with success, stdout, stderr, returncode, elapsed_s, command
        """
        ssh_command = (
            f"{self._get_ssh_command_prefix()} "
            f"{self.ssh_user}@{self.public_ip} {shlex.quote(command)}"
        )
        if timeout:
            debug_print(f"Command ({timeout}s): {ssh_command}")
        else:
            debug_print(f"Command: {ssh_command}")
        result = safe_command(ssh_command, timeout=timeout)
        debug_log_result(result["success"], result["stdout"], result["stderr"])
        return result


class TerraformCluster:
    """A ``ClusterHandle`` backed by Terraform-managed instances.

    Each instance runs the database under supervisord; nodes are stopped and
    started through ``supervisorctl`` and queried over their local HTTP port.
    """

    def __init__(
        self,
        prefix: str,
        environment: EnvironmentConfig,
        settings: HarnessSettings,
    ):
        self.prefix = prefix
        self.environment = environment
        self.settings = settings
        self.infra = InfraManager(prefix, environment)
        self.flags: list[str] = []
        self.vars: dict[str, str] = {}
        self._instances: list[CloudInstanceManager] = []

    def add_flag(self, flag: str) -> None:
        self.flags.append(flag)

    def set_var(self, key: str, value: str) -> None:
        self.vars[key] = value

    def terraform_vars(self, nodes: int) -> dict[str, str]:
        tf_vars = {
            "prefix": self.prefix,
            "num_instances": str(nodes),
            "cockroach_flags": " ".join(self.flags),
        }
        tf_vars.update(self.vars)
        return tf_vars

    def resize(self, nodes: int) -> None:
        result = self.infra.apply(self.terraform_vars(nodes))
        if not result.success:
            raise ClusterError(f"{result.message}: {result.error}")

        outputs = result.outputs or {}
        public_ips = outputs.get(PUBLIC_IPS_OUTPUT) or []
        private_ips = outputs.get(PRIVATE_IPS_OUTPUT) or []
        if len(public_ips) != nodes:
            raise ClusterError(
                f"expected {nodes} instance(s) after resize, terraform reports {len(public_ips)}"
            )

        self._instances = [
            CloudInstanceManager(
                public_ip=ip,
                private_ip=private_ips[i] if i < len(private_ips) else None,
                ssh_private_key_path=self.environment.ssh_private_key_path,
                ssh_user=self.environment.ssh_user,
                ssh_port=self.environment.ssh_port,
            )
            for i, ip in enumerate(public_ips)
        ]

    def num_nodes(self) -> int:
        return len(self._instances)

    def _instance(self, node: int) -> CloudInstanceManager:
        if not 0 <= node < len(self._instances):
            raise ClusterError(
                f"node {node} out of range for cluster of {len(self._instances)}"
            )
        return self._instances[node]

    def _run(self, node: int, command: str, timeout: float | None) -> str:
        result = self._instance(node).run_remote_command(command, timeout=timeout)
        if not result["success"]:
            raise ClusterError(
                f"node {node}: `{command}` failed: {result['stderr'].strip()}"
            )
        return str(result["stdout"])

    def _supervisorctl(self, action: str) -> str:
        conf = shlex.quote(self.settings.supervisor_conf)
        return f"supervisorctl -c {conf} {action} cockroach"

    def kill(self, node: int) -> None:
        self._run(node, self._supervisorctl("stop"), timeout=120)

    def restart(self, node: int) -> None:
        self._run(node, self._supervisorctl("start"), timeout=120)

    def exec(self, node: int, command: str) -> None:
        self._run(node, command, timeout=self.settings.remote_command_timeout_s)

    def pg_url(self, node: int) -> str:
        instance = self._instance(node)
        return (
            f"postgresql://{self.settings.sql_user}@{instance.public_ip}:"
            f"{self.settings.sql_port}/?sslmode=disable"
        )

    def gossip_peers(self, node: int, timeout: float | None = None) -> int:
        """Count peers in ``node``'s gossip network, waiting at most ``timeout``."""
        limit = GOSSIP_STATUS_TIMEOUT_S
        if timeout is not None:
            limit = min(timeout, GOSSIP_STATUS_TIMEOUT_S)
        stdout = self._run(
            node,
            f"curl -sf http://localhost:{self.settings.http_port}/_status/gossip/local",
            timeout=max(limit, 1),
        )
        try:
            return count_gossip_peers(json.loads(stdout))
        except (json.JSONDecodeError, AttributeError) as e:
            raise ClusterError(f"node {node}: unreadable gossip status: {e}") from e

    def assert_healthy(self) -> None:
        """Fail unless the database process is running on every node."""
        dead = []
        for node in range(self.num_nodes()):
            result = self._instance(node).run_remote_command(
                self._supervisorctl("status"), timeout=30
            )
            if "RUNNING" not in (result.get("stdout") or ""):
                dead.append(node)
        if dead:
            raise ClusterError(
                f"database process not running on node(s): {', '.join(map(str, dead))}"
            )

    def destroy(self) -> None:
        result = self.infra.destroy()
        self._instances = []
        if not result.success:
            raise ClusterError(f"{result.message}: {result.error}")


def make_terraform_cluster(
    prefix: str, environment: EnvironmentConfig, settings: HarnessSettings
) -> TerraformCluster:
    """Default ``ClusterFactory``."""
    return TerraformCluster(prefix, environment, settings)
