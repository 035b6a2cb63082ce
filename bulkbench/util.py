"""Utility functions for the bulk-operations benchmark harness."""

import json
import subprocess
import time
from pathlib import Path
from typing import Any


class Timer:
    """Context manager for timing operations."""

    def __init__(self, description: str = "Operation"):
        self.description = description
        self.start_time: float = 0.0
        self.end_time: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()

    @property
    def elapsed(self) -> float:
        """Return elapsed time in seconds."""
        if self.end_time == 0.0 and self.start_time > 0.0:
            return time.perf_counter() - self.start_time
        return self.end_time - self.start_time


def safe_command(cmd: str | list[str], timeout: float | None = None) -> dict[str, Any]:
    """
    Execute a command and return a structured result instead of raising.

    Returns:
        Dict with keys: success, stdout, stderr, returncode, elapsed_s, command
    """
    start_time = time.perf_counter()
    command_str = cmd if isinstance(cmd, str) else " ".join(cmd)

    try:
        result = subprocess.run(
            cmd,
            shell=isinstance(cmd, str),  # nosec B602
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return {
            "success": result.returncode == 0,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "returncode": result.returncode,
            "elapsed_s": time.perf_counter() - start_time,
            "command": command_str,
        }
    except subprocess.TimeoutExpired:
        stderr = f"Command timed out after {timeout}s"
    except OSError as e:
        stderr = str(e)

    return {
        "success": False,
        "stdout": "",
        "stderr": stderr,
        "returncode": -1,
        "elapsed_s": time.perf_counter() - start_time,
        "command": command_str,
    }


def ensure_directory(path: str | Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def save_json(data: Any, path: str | Path, indent: int = 2) -> None:
    """Save data as JSON file."""
    filepath = Path(path)
    ensure_directory(filepath.parent)

    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)


def format_bytes(num_bytes: int | float) -> str:
    """Render a byte count with binary (IEC) units, e.g. ``1.5 GiB``."""
    value = float(num_bytes)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB", "PiB"):
        if abs(value) < 1024.0 or unit == "PiB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} EiB"
