"""Azure control-plane client.

Wraps the Azure CLI commands nicswap needs (show/create/update/delete/
attach/detach for VMs and NICs) and converts every outcome into an AzResult.
Provider failures never raise out of this module; the caller inspects the
result.

Security:
- No shell=True
- Command arguments passed as a list
- stderr truncated before logging
"""

import json
import logging
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import replace
from enum import Enum
from typing import Any

from nicswap.azure_cli_executor import DEFAULT_TIMEOUT, run_az_command
from nicswap.models import NICCreateSpec, NICResource, VMResource
from nicswap.results import AzResult, FailureKind, failed, ok

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = ("ResourceNotFound", "NotFound", "was not found")

Runner = Callable[..., subprocess.CompletedProcess]


class ControlPlaneError(Exception):
    """Raised when the control-plane client is misconfigured."""

    pass


class PowerAction(Enum):
    """Power operations issued with --no-wait."""

    START = "start"
    DEALLOCATE = "deallocate"


class AzureControlPlane:
    """Issue Azure CLI commands and return tagged results.

    Every call is attempted once. Any non-zero exit, timeout, missing az
    binary or unparseable output is returned as a failed AzResult.
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, runner: Runner = run_az_command):
        """Initialize the client.

        Args:
            timeout: Per-command timeout in seconds
            runner: Callable with run_az_command's signature (injectable for tests)
        """
        if timeout <= 0:
            raise ControlPlaneError(f"Command timeout must be positive, got {timeout}")
        self.timeout = timeout
        self._runner = runner

    def _run(self, cmd: list[str], description: str, parse_json: bool = True) -> AzResult[Any]:
        """Run one az command and wrap its outcome.

        Args:
            cmd: Full command list starting with "az"
            description: Short human description for logs
            parse_json: Decode stdout as JSON (empty stdout yields Ok(None))

        Returns:
            AzResult with decoded output or failure details
        """
        logger.info(f"Executing: {description}")
        logger.info(f"Command: {shlex.join(cmd)}")
        try:
            result = self._runner(cmd, timeout=self.timeout, check=True)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            kind = (
                FailureKind.NOT_FOUND
                if any(marker in stderr for marker in NOT_FOUND_MARKERS)
                else FailureKind.COMMAND_FAILED
            )
            logger.error(f"{description} failed with exit code {e.returncode}")
            if stderr:
                logger.error(f"Output: {stderr[:500]}")
            return failed(kind, stderr or f"exit code {e.returncode}")
        except subprocess.TimeoutExpired:
            logger.error(f"{description} timed out after {self.timeout}s")
            return failed(FailureKind.TIMEOUT, f"timed out after {self.timeout}s")
        except FileNotFoundError:
            logger.error("Azure CLI (az) not found in PATH")
            return failed(FailureKind.COMMAND_FAILED, "az executable not found")

        stdout = (result.stdout or "").strip()
        if not parse_json or not stdout:
            return ok(stdout or None)
        try:
            return ok(json.loads(stdout))
        except json.JSONDecodeError:
            logger.error(f"{description} returned invalid JSON")
            return failed(FailureKind.INVALID_RESPONSE, stdout[:200])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_vm(self, name: str, resource_group: str) -> AzResult[VMResource]:
        """Read a VM, including power state and attached NIC ids."""
        result = self._run(
            [
                "az", "vm", "show", "--show-details",
                "--name", name,
                "--resource-group", resource_group,
                "--output", "json",
            ],
            f"Get VM '{name}'",
        )
        if result.failed:
            return result
        if not isinstance(result.value, dict):
            return failed(FailureKind.INVALID_RESPONSE, f"Unexpected VM payload for '{name}'")
        return ok(VMResource.from_azure(result.value))

    def get_power_state(self, name: str, resource_group: str) -> AzResult[str]:
        """Read the raw PowerState/* status code of a VM."""
        result = self._run(
            [
                "az", "vm", "get-instance-view",
                "--name", name,
                "--resource-group", resource_group,
                "--query", "instanceView.statuses[?starts_with(code, 'PowerState/')].code | [0]",
                "--output", "json",
            ],
            f"Get power state of VM '{name}'",
        )
        if result.failed:
            return result
        return ok(result.value or "PowerState/unknown")

    def get_nic(self, id_or_name: str, resource_group: str | None = None) -> AzResult[NICResource]:
        """Read a NIC by full resource id or by name within a resource group."""
        cmd = ["az", "network", "nic", "show"]
        if id_or_name.startswith("/subscriptions/"):
            cmd += ["--ids", id_or_name]
        else:
            if not resource_group:
                raise ControlPlaneError(f"Resource group required to look up NIC '{id_or_name}'")
            cmd += ["--name", id_or_name, "--resource-group", resource_group]
        cmd += ["--output", "json"]

        result = self._run(cmd, f"Get NIC '{resource_name(id_or_name)}'")
        if result.failed:
            return result
        if not isinstance(result.value, dict):
            return failed(FailureKind.INVALID_RESPONSE, f"Unexpected NIC payload for '{id_or_name}'")
        return ok(NICResource.from_azure(result.value))

    def list_available_ips(self, subnet_id: str) -> AzResult[list[str]]:
        """List free private addresses in a subnet (may be empty)."""
        result = self._run(
            ["az", "network", "vnet", "subnet", "list-available-ips", "--ids", subnet_id, "--output", "json"],
            f"List available IPs in subnet '{resource_name(subnet_id)}'",
        )
        if result.failed:
            return result
        return ok([ip for ip in (result.value or []) if ip])

    def show_account(self) -> AzResult[str]:
        """Return the name of the authenticated subscription."""
        result = self._run(
            ["az", "account", "show", "--query", "name", "--output", "json"],
            "Verify Azure authentication",
        )
        if result.failed:
            return result
        return ok(str(result.value or ""))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_nic(self, spec: NICCreateSpec) -> AzResult[NICResource]:
        """Create a NIC with a static private IP (static is implied by giving an address)."""
        cmd = [
            "az", "network", "nic", "create",
            "--name", spec.name,
            "--resource-group", spec.resource_group,
            "--location", spec.location,
            "--subnet", spec.subnet_id,
            "--private-ip-address", spec.private_ip_address,
        ]
        if spec.network_security_group_id:
            cmd += ["--network-security-group", spec.network_security_group_id]
        cmd += ["--output", "json"]

        result = self._run(cmd, f"Create NIC '{spec.name}'")
        if result.failed:
            return result
        payload = result.value or {}
        if isinstance(payload, dict) and "NewNIC" in payload:
            payload = payload["NewNIC"]
        if not isinstance(payload, dict) or not payload.get("id"):
            return failed(FailureKind.INVALID_RESPONSE, f"NIC '{spec.name}' created without an id")
        nic = NICResource.from_azure(payload)
        if not nic.resource_group:
            nic = replace(nic, resource_group=spec.resource_group)
        return ok(nic)

    def delete_nic(self, name: str, resource_group: str, no_wait: bool = False) -> AzResult[None]:
        """Delete a NIC by name."""
        cmd = ["az", "network", "nic", "delete", "--name", name, "--resource-group", resource_group]
        if no_wait:
            cmd.append("--no-wait")
        result = self._run(cmd, f"Delete NIC '{name}'", parse_json=False)
        return result if result.failed else ok()

    def attach_nic(self, vm_name: str, resource_group: str, nic_id: str) -> AzResult[None]:
        """Attach an existing NIC to a (deallocated) VM."""
        result = self._run(
            [
                "az", "vm", "nic", "add",
                "--vm-name", vm_name,
                "--resource-group", resource_group,
                "--nics", nic_id,
                "--output", "none",
            ],
            f"Attach NIC '{resource_name(nic_id)}' to VM '{vm_name}'",
            parse_json=False,
        )
        return result if result.failed else ok()

    def detach_nic(self, vm_name: str, resource_group: str, nic_id: str) -> AzResult[None]:
        """Detach a NIC from a (deallocated) VM."""
        result = self._run(
            [
                "az", "vm", "nic", "remove",
                "--vm-name", vm_name,
                "--resource-group", resource_group,
                "--nics", nic_id,
                "--output", "none",
            ],
            f"Detach NIC '{resource_name(nic_id)}' from VM '{vm_name}'",
            parse_json=False,
        )
        return result if result.failed else ok()

    def set_power(self, vm_name: str, resource_group: str, action: PowerAction) -> AzResult[None]:
        """Start or deallocate a VM without waiting for completion."""
        result = self._run(
            ["az", "vm", action.value, "--name", vm_name, "--resource-group", resource_group, "--no-wait"],
            f"{action.value.capitalize()} VM '{vm_name}'",
            parse_json=False,
        )
        return result if result.failed else ok()

    def update_nic_ip_config(
        self, nic_name: str, resource_group: str, ip_address: str, ip_config_name: str = "ipconfig1"
    ) -> AzResult[None]:
        """Set the private IP of one IP configuration (static allocation)."""
        result = self._run(
            [
                "az", "network", "nic", "ip-config", "update",
                "--nic-name", nic_name,
                "--resource-group", resource_group,
                "--name", ip_config_name,
                "--private-ip-address", ip_address,
                "--output", "none",
            ],
            f"Update IP of NIC '{nic_name}' to {ip_address}",
            parse_json=False,
        )
        return result if result.failed else ok()

    def set_accelerated_networking(self, nic_id: str, enabled: bool) -> AzResult[None]:
        """Toggle accelerated networking on a NIC in place."""
        result = self._run(
            [
                "az", "network", "nic", "update",
                "--ids", nic_id,
                "--accelerated-networking", "true" if enabled else "false",
                "--output", "none",
            ],
            f"Set accelerated networking={str(enabled).lower()} on NIC '{resource_name(nic_id)}'",
            parse_json=False,
        )
        return result if result.failed else ok()


def resource_name(resource_id: str) -> str:
    """Return the last path segment of an Azure resource id (or the value itself)."""
    return resource_id.rstrip("/").rsplit("/", 1)[-1]


__all__ = [
    "AzureControlPlane",
    "ControlPlaneError",
    "PowerAction",
    "resource_name",
]
