"""Opt-in tracing of remote commands and cluster polling.

Turned on with ``--debug`` or ``BULKBENCH_DEBUG=1``. The flag lives in the
environment so that it also reaches subprocesses.
"""

import os

DEBUG_ENV_VAR = "BULKBENCH_DEBUG"


def set_debug(enabled: bool) -> None:
    if enabled:
        os.environ[DEBUG_ENV_VAR] = "1"
    else:
        os.environ.pop(DEBUG_ENV_VAR, None)


def is_debug_enabled() -> bool:
    return os.getenv(DEBUG_ENV_VAR, "").lower() in ("1", "true", "yes")


def debug_print(message: str) -> None:
    """Print ``message`` when tracing is on, tagged with the fan-out node."""
    if not is_debug_enabled():
        return

    from .run.fanout import get_current_task_name

    task = get_current_task_name()
    tag = f"[{task}] " if task else ""
    print(f"{tag}[DEBUG] {message}")


def debug_log_result(
    success: bool, stdout: str | None = None, stderr: str | None = None
) -> None:
    debug_print(f"Command success: {success}")
    for label, text in (("Stdout", stdout), ("Stderr", stderr)):
        if text:
            debug_print(f"{label}: {text.rstrip()}")
