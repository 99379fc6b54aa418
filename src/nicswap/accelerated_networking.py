"""Accelerated networking reconciliation.

Brings the accelerated-networking flag of each VM's primary NIC to a
desired value. The update is made in place; the VM does not need to be
deallocated.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from nicswap.control_plane import AzureControlPlane, resource_name

logger = logging.getLogger(__name__)


class ReconcileStatus(Enum):
    """Three-way outcome of reconciling one VM."""

    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class AcceleratedNetworkingRequest:
    """One row of input: desired flag is kept as the raw text from the CSV."""

    vm_name: str
    resource_group: str
    enable: str


@dataclass
class ReconcileResult:
    """Result of reconciling one VM."""

    vm_name: str
    status: ReconcileStatus
    message: str
    nic_name: str | None = None

    def __repr__(self) -> str:
        return f"[{self.status.value.upper()}] {self.vm_name}: {self.message}"


def parse_flag(value: str) -> bool | None:
    """Parse "true"/"false" (case-insensitive, trimmed). Anything else is None."""
    normalized = value.strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    return None


class AcceleratedNetworkingReconciler:
    """Compare and update accelerated networking on a VM's first NIC."""

    def __init__(self, control_plane: AzureControlPlane):
        self.control_plane = control_plane

    def reconcile(self, request: AcceleratedNetworkingRequest) -> ReconcileResult:
        """Reconcile one VM.

        Args:
            request: VM and desired flag

        Returns:
            ReconcileResult: UPDATED, SKIPPED (already correct or invalid value)
            or FAILED (VM/NIC not found, update rejected)
        """
        logger.info(f"Processing VM: {request.vm_name}")

        desired = parse_flag(request.enable)
        if desired is None:
            logger.warning(
                f"Invalid value for EnableAcceleratedNetworking: '{request.enable}' "
                "(must be 'true' or 'false'); skipping"
            )
            return ReconcileResult(
                request.vm_name, ReconcileStatus.SKIPPED, f"Invalid value '{request.enable}'"
            )

        vm_result = self.control_plane.get_vm(request.vm_name, request.resource_group)
        if vm_result.failed or not vm_result.unwrap().primary_nic_id:
            message = f"Could not find VM '{request.vm_name}' in resource group '{request.resource_group}'"
            logger.error(message)
            return ReconcileResult(request.vm_name, ReconcileStatus.FAILED, message)

        nic_id = vm_result.unwrap().primary_nic_id or ""
        nic_name = resource_name(nic_id)
        nic_result = self.control_plane.get_nic(nic_id)
        if nic_result.failed:
            message = f"Could not read NIC '{nic_name}'"
            logger.error(message)
            return ReconcileResult(request.vm_name, ReconcileStatus.FAILED, message, nic_name)

        current = nic_result.unwrap().accelerated_networking_enabled
        logger.info(f"Current accelerated networking: {str(current).lower()}")
        logger.info(f"Target accelerated networking: {str(desired).lower()}")

        if current == desired:
            message = f"No change needed - already set to {str(desired).lower()}"
            logger.info(message)
            return ReconcileResult(request.vm_name, ReconcileStatus.SKIPPED, message, nic_name)

        update = self.control_plane.set_accelerated_networking(nic_id, desired)
        if update.failed:
            message = f"Failed to update accelerated networking on {nic_name}"
            logger.error(message)
            return ReconcileResult(request.vm_name, ReconcileStatus.FAILED, message, nic_name)

        action = "enabled" if desired else "disabled"
        message = f"Successfully {action} accelerated networking on {nic_name}"
        logger.info(message)
        return ReconcileResult(request.vm_name, ReconcileStatus.UPDATED, message, nic_name)


__all__ = [
    "AcceleratedNetworkingReconciler",
    "AcceleratedNetworkingRequest",
    "ReconcileResult",
    "ReconcileStatus",
    "parse_flag",
]
