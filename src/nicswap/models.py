"""Data models for NIC replacement.

Requests are immutable inputs (one per VM). Resources are parsed snapshots
of Azure state. A ReplacementSession lives only while one VM is processed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PowerState(Enum):
    """Simplified VM power state."""

    RUNNING = "running"
    DEALLOCATED = "deallocated"
    TRANSITIONING = "transitioning"

    @classmethod
    def from_azure(cls, power_state: str | None) -> "PowerState":
        """Map an Azure power state ("VM running", "PowerState/deallocated") to PowerState."""
        value = (power_state or "").lower()
        if value.endswith("running"):
            return cls.RUNNING
        if value.endswith("deallocated"):
            return cls.DEALLOCATED
        return cls.TRANSITIONING


class Phase(Enum):
    """Position of a replacement session in the state machine."""

    START = "start"
    INSPECTING = "inspecting"
    DEALLOCATING = "deallocating"
    AWAITING_DEALLOCATED = "awaiting_deallocated"
    NAMING_RESOLVED = "naming_resolved"
    TEMP_NIC_CREATED = "temp_nic_created"
    NEW_NIC_ATTACHED = "new_nic_attached"
    OLD_NIC_DETACHED = "old_nic_detached"
    OLD_NIC_DELETED = "old_nic_deleted"
    IP_FINALIZED = "ip_finalized"
    STARTING = "starting"
    AWAITING_RUNNING = "awaiting_running"
    DONE = "done"
    FAILED = "failed"


class ErrorKind(Enum):
    """Classification of a workflow failure or warning."""

    PRECONDITION = "precondition"
    INSPECTION = "inspection"
    TRANSITIONAL = "transitional"
    POST_CRITICAL = "post_critical"
    TIMEOUT = "timeout"


class OutcomeStatus(Enum):
    """Final status of one VM's replacement."""

    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkflowWarning:
    """A non-fatal problem recorded while replacing a NIC."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ReplacementRequest:
    """One row of input: replace the NIC of vm_name and end on target_ip."""

    vm_name: str
    resource_group: str
    vnet_resource_group: str
    vnet_name: str
    subnet_name: str
    target_ip: str


@dataclass(frozen=True)
class VMResource:
    """VM information relevant to NIC replacement."""

    name: str
    resource_group: str
    location: str
    power_state: PowerState
    attached_nic_ids: tuple[str, ...] = ()

    @property
    def attached_nic_count(self) -> int:
        """Number of NICs currently attached."""
        return len(self.attached_nic_ids)

    @property
    def primary_nic_id(self) -> str | None:
        """First attached NIC id, if any."""
        return self.attached_nic_ids[0] if self.attached_nic_ids else None

    @classmethod
    def from_azure(cls, data: dict[str, Any]) -> "VMResource":
        """Parse `az vm show -d` output."""
        interfaces = (data.get("networkProfile") or {}).get("networkInterfaces") or []
        return cls(
            name=data.get("name", ""),
            resource_group=data.get("resourceGroup", ""),
            location=data.get("location", ""),
            power_state=PowerState.from_azure(data.get("powerState")),
            attached_nic_ids=tuple(nic["id"] for nic in interfaces if nic.get("id")),
        )


@dataclass(frozen=True)
class NICResource:
    """NIC information relevant to NIC replacement."""

    id: str
    name: str
    resource_group: str
    subnet_id: str | None
    private_ip_address: str | None
    ip_allocation_method: str | None
    network_security_group_id: str | None = None
    accelerated_networking_enabled: bool = False
    attached_vm_id: str | None = None

    @property
    def is_attached(self) -> bool:
        """True if the NIC is attached to any VM."""
        return bool(self.attached_vm_id)

    @classmethod
    def from_azure(cls, data: dict[str, Any]) -> "NICResource":
        """Parse `az network nic show` output.

        Only the primary IP configuration (index 0) is read.
        """
        ip_configs = data.get("ipConfigurations") or []
        primary = ip_configs[0] if ip_configs else {}
        nsg = data.get("networkSecurityGroup") or {}
        vm = data.get("virtualMachine") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            resource_group=data.get("resourceGroup", ""),
            subnet_id=(primary.get("subnet") or {}).get("id"),
            private_ip_address=primary.get("privateIPAddress") or primary.get("privateIpAddress"),
            ip_allocation_method=primary.get("privateIPAllocationMethod")
            or primary.get("privateIpAllocationMethod"),
            network_security_group_id=nsg.get("id") or None,
            accelerated_networking_enabled=bool(data.get("enableAcceleratedNetworking", False)),
            attached_vm_id=vm.get("id") or None,
        )


@dataclass(frozen=True)
class NICCreateSpec:
    """Parameters for creating a NIC with a static private IP."""

    name: str
    resource_group: str
    location: str
    subnet_id: str
    private_ip_address: str
    network_security_group_id: str | None = None


@dataclass
class ReplacementSession:
    """Working state for one VM while its NIC is being replaced."""

    request: ReplacementRequest
    phase: Phase = Phase.START
    attempting: Phase = Phase.START
    location: str | None = None
    original_nic: NICResource | None = None
    new_nic_name: str | None = None
    new_nic_id: str | None = None
    existing_candidate: NICResource | None = None
    temporary_ip: str | None = None
    final_ip: str | None = None
    warnings: list[WorkflowWarning] = field(default_factory=list)

    def begin(self, phase: Phase) -> None:
        """Note the phase now being attempted."""
        self.attempting = phase

    def advance(self, phase: Phase) -> None:
        """Move to the next phase."""
        self.phase = phase

    def warn(self, kind: ErrorKind, message: str) -> None:
        """Record a non-fatal problem."""
        self.warnings.append(WorkflowWarning(kind, message))


@dataclass
class ReplacementOutcome:
    """Result of replacing one VM's NIC."""

    vm_name: str
    resource_group: str
    status: OutcomeStatus
    phase: Phase
    message: str
    error_kind: ErrorKind | None = None
    warnings: list[WorkflowWarning] = field(default_factory=list)
    new_nic_name: str | None = None
    temporary_ip: str | None = None
    final_ip: str | None = None
    target_ip: str | None = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True for success and success-with-warnings."""
        return self.status != OutcomeStatus.FAILED

    def __repr__(self) -> str:
        result = f"[{self.status.value.upper()}] {self.vm_name}: {self.message}"
        if self.warnings:
            result += f" ({len(self.warnings)} warnings)"
        return result


__all__ = [
    "ErrorKind",
    "NICCreateSpec",
    "NICResource",
    "OutcomeStatus",
    "Phase",
    "PowerState",
    "ReplacementOutcome",
    "ReplacementRequest",
    "ReplacementSession",
    "VMResource",
    "WorkflowWarning",
]
