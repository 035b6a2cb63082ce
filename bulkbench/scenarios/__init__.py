"""Benchmark scenarios."""

from collections.abc import Mapping

from ..config import ScenarioOverrides
from .backup_fixed import Backup2TB
from .base import Scenario
from .restore_big import RestoreBig
from .restore_fixed import Restore2TB

# Scenario factory mapping
SCENARIO_IMPLEMENTATIONS: dict[str, type[Scenario]] = {
    RestoreBig.name: RestoreBig,
    Restore2TB.name: Restore2TB,
    Backup2TB.name: Backup2TB,
}


def create_scenario(
    name: str,
    overrides: ScenarioOverrides | None = None,
    environ: Mapping[str, str] | None = None,
) -> Scenario:
    """
    Factory function to create a scenario.

    Args:
        name: Scenario name as listed in SCENARIO_IMPLEMENTATIONS
        overrides: Optional per-scenario configuration overrides
        environ: Environment to read credentials from (defaults to os.environ)

    Returns:
        Scenario instance

    Raises:
        ValueError: If scenario name is not supported
    """
    if name not in SCENARIO_IMPLEMENTATIONS:
        available = ", ".join(SCENARIO_IMPLEMENTATIONS.keys())
        raise ValueError(f"Unsupported scenario: {name}. Available: {available}")

    return SCENARIO_IMPLEMENTATIONS[name](overrides, environ)


__all__ = [
    "Scenario",
    "RestoreBig",
    "Restore2TB",
    "Backup2TB",
    "create_scenario",
    "SCENARIO_IMPLEMENTATIONS",
]
