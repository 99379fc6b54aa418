"""Standardized Azure CLI subprocess execution.

Provides run_az_command() - a thin wrapper around subprocess.run that
always captures output as text, enforces a timeout and logs the command.

Every command is attempted exactly once. A NIC replacement must observe
a failed call at the step where it happened so the matching rollback can
run; re-issuing create/attach/detach calls behind the workflow's back would
hide that.

Usage:
    from nicswap.azure_cli_executor import run_az_command

    result = run_az_command(["az", "vm", "show", "--name", "vm1", "--resource-group", "rg1"])
"""

import logging
import shlex
import subprocess

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


def run_az_command(
    cmd: list[str],
    *,
    timeout: int = DEFAULT_TIMEOUT,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute an Azure CLI command once.

    Args:
        cmd: Command list starting with "az", e.g. ["az", "vm", "list"]
        timeout: Subprocess timeout in seconds (default: 300)
        check: If True, raise CalledProcessError on non-zero exit (default: True)

    Returns:
        subprocess.CompletedProcess with stdout/stderr

    Raises:
        subprocess.CalledProcessError: On non-zero exit (when check=True)
        subprocess.TimeoutExpired: If the command exceeds timeout
        FileNotFoundError: If the az binary is not installed
    """
    logger.debug(f"Command: {shlex.join(cmd)}")
    return subprocess.run(cmd, capture_output=True, text=True, check=check, timeout=timeout)


__all__ = ["DEFAULT_TIMEOUT", "run_az_command"]
