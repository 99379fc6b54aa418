"""
In-memory fake of AzureControlPlane.

Simulates just enough Azure behavior for the NIC replacement workflow:
VMs with attached NICs, NICs with IPs in a subnet, power transitions and
the provider's refusal to delete attached NICs. Every call is recorded.
"""

from dataclasses import dataclass, field
from typing import Any

from nicswap.control_plane import PowerAction
from nicswap.models import NICCreateSpec, NICResource, VMResource
from nicswap.results import AzResult, FailureKind, failed, ok

SUBSCRIPTION = "/subscriptions/00000000-0000-0000-0000-000000000000"
SUBNET_ID = (
    f"{SUBSCRIPTION}/resourceGroups/network-rg/providers/Microsoft.Network"
    "/virtualNetworks/test-vnet/subnets/default"
)
NSG_ID = f"{SUBSCRIPTION}/resourceGroups/network-rg/providers/Microsoft.Network/networkSecurityGroups/test-nsg"


def nic_id(resource_group: str, name: str) -> str:
    return f"{SUBSCRIPTION}/resourceGroups/{resource_group}/providers/Microsoft.Network/networkInterfaces/{name}"


def vm_id(resource_group: str, name: str) -> str:
    return f"{SUBSCRIPTION}/resourceGroups/{resource_group}/providers/Microsoft.Compute/virtualMachines/{name}"


@dataclass
class FakeNIC:
    name: str
    resource_group: str
    ips: list[str]
    subnet_id: str = SUBNET_ID
    nsg_id: str | None = NSG_ID
    allocation: str = "Static"
    accelerated_networking: bool = False
    vm_id: str | None = None

    @property
    def id(self) -> str:
        return nic_id(self.resource_group, self.name)

    def as_azure(self) -> dict[str, Any]:
        ip_configs = [
            {
                "name": f"ipconfig{index + 1}",
                "privateIPAddress": ip,
                "privateIPAllocationMethod": self.allocation if index == 0 else "Static",
                "subnet": {"id": self.subnet_id},
            }
            for index, ip in enumerate(self.ips)
        ]
        return {
            "id": self.id,
            "name": self.name,
            "resourceGroup": self.resource_group,
            "ipConfigurations": ip_configs,
            "networkSecurityGroup": {"id": self.nsg_id} if self.nsg_id else None,
            "enableAcceleratedNetworking": self.accelerated_networking,
            "virtualMachine": {"id": self.vm_id} if self.vm_id else None,
        }


@dataclass
class FakeVM:
    name: str
    resource_group: str
    location: str = "eastus"
    power_state: str = "PowerState/running"
    nic_ids: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return vm_id(self.resource_group, self.name)

    def as_azure(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "resourceGroup": self.resource_group,
            "location": self.location,
            "powerState": "VM " + self.power_state.split("/")[-1],
            "networkProfile": {"networkInterfaces": [{"id": i} for i in self.nic_ids]},
        }


@dataclass
class FailureRule:
    operation: str
    match: str | None
    kind: FailureKind
    detail: str


class FakeControlPlane:
    """Stateful stand-in for AzureControlPlane (same method signatures)."""

    def __init__(self, available_ips: list[str] | None = None):
        self.vms: dict[str, FakeVM] = {}
        self.nics: dict[str, FakeNIC] = {}
        self.available_ips = list(available_ips) if available_ips is not None else ["10.0.0.100", "10.0.0.101"]
        self.calls: list[tuple[str, ...]] = []
        self.rules: list[FailureRule] = []
        self.stuck_actions: set[PowerAction] = set()
        self.attached_delete_attempts: list[str] = []

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def add_vm(
        self,
        name: str,
        resource_group: str = "rg1",
        nic_name: str | None = None,
        primary_ip: str = "10.0.0.4",
        secondary_ip: str | None = "10.0.0.5",
        nsg_id: str | None = NSG_ID,
    ) -> FakeVM:
        vm = FakeVM(name=name, resource_group=resource_group)
        ips = [primary_ip] + ([secondary_ip] if secondary_ip else [])
        nic = self.add_nic(nic_name or f"{name}-nic", resource_group, ips, nsg_id=nsg_id)
        nic.vm_id = vm.id
        vm.nic_ids.append(nic.id)
        self.vms[name.lower()] = vm
        return vm

    def add_nic(
        self,
        name: str,
        resource_group: str = "rg1",
        ips: list[str] | None = None,
        nsg_id: str | None = NSG_ID,
        attached_to: str | None = None,
    ) -> FakeNIC:
        nic = FakeNIC(name=name, resource_group=resource_group, ips=list(ips or []), nsg_id=nsg_id)
        if attached_to:
            nic.vm_id = vm_id(resource_group, attached_to)
        self.nics[name.lower()] = nic
        return nic

    def fail_on(
        self,
        operation: str,
        match: str | None = None,
        kind: FailureKind = FailureKind.COMMAND_FAILED,
        detail: str = "simulated failure",
    ) -> None:
        """Make calls to operation fail (only those whose arguments contain match, if given)."""
        self.rules.append(FailureRule(operation, match, kind, detail))

    def operations(self) -> list[str]:
        """Names of all recorded calls, in order."""
        return [call[0] for call in self.calls]

    def calls_to(self, operation: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == operation]

    def vm(self, name: str) -> FakeVM:
        return self.vms[name.lower()]

    def nic(self, name: str) -> FakeNIC | None:
        return self.nics.get(name.lower())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, operation: str, *args: Any) -> AzResult | None:
        text_args = tuple(str(a) for a in args)
        self.calls.append((operation, *text_args))
        for rule in self.rules:
            if rule.operation == operation and (rule.match is None or any(rule.match in a for a in text_args)):
                return failed(rule.kind, rule.detail)
        return None

    def _find_nic(self, id_or_name: str) -> FakeNIC | None:
        return self.nics.get(id_or_name.rstrip("/").rsplit("/", 1)[-1].lower())

    def _ip_in_use(self, ip: str, exclude: FakeNIC | None = None) -> bool:
        return any(ip in nic.ips for nic in self.nics.values() if nic is not exclude)

    @staticmethod
    def _not_found(what: str) -> AzResult:
        return failed(FailureKind.NOT_FOUND, f"(ResourceNotFound) The Resource '{what}' was not found.")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_vm(self, name: str, resource_group: str) -> AzResult[VMResource]:
        if (failure := self._record("get_vm", name, resource_group)) is not None:
            return failure
        vm = self.vms.get(name.lower())
        if vm is None:
            return self._not_found(name)
        return ok(VMResource.from_azure(vm.as_azure()))

    def get_power_state(self, name: str, resource_group: str) -> AzResult[str]:
        if (failure := self._record("get_power_state", name, resource_group)) is not None:
            return failure
        vm = self.vms.get(name.lower())
        if vm is None:
            return self._not_found(name)
        return ok(vm.power_state)

    def get_nic(self, id_or_name: str, resource_group: str | None = None) -> AzResult[NICResource]:
        if (failure := self._record("get_nic", id_or_name, resource_group or "")) is not None:
            return failure
        nic = self._find_nic(id_or_name)
        if nic is None:
            return self._not_found(id_or_name)
        return ok(NICResource.from_azure(nic.as_azure()))

    def list_available_ips(self, subnet_id: str) -> AzResult[list[str]]:
        if (failure := self._record("list_available_ips", subnet_id)) is not None:
            return failure
        return ok([ip for ip in self.available_ips if not self._ip_in_use(ip)])

    def show_account(self) -> AzResult[str]:
        if (failure := self._record("show_account")) is not None:
            return failure
        return ok("Test Subscription")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_nic(self, spec: NICCreateSpec) -> AzResult[NICResource]:
        if (failure := self._record("create_nic", spec.name, spec.private_ip_address)) is not None:
            return failure
        if spec.name.lower() in self.nics:
            return failed(FailureKind.COMMAND_FAILED, f"NIC '{spec.name}' already exists")
        if self._ip_in_use(spec.private_ip_address):
            return failed(FailureKind.COMMAND_FAILED, f"PrivateIPAddressInUse: {spec.private_ip_address}")
        nic = self.add_nic(spec.name, spec.resource_group, [spec.private_ip_address], spec.network_security_group_id)
        nic.subnet_id = spec.subnet_id
        return ok(NICResource.from_azure(nic.as_azure()))

    def delete_nic(self, name: str, resource_group: str, no_wait: bool = False) -> AzResult[None]:
        if (failure := self._record("delete_nic", name, resource_group)) is not None:
            return failure
        nic = self._find_nic(name)
        if nic is None:
            return self._not_found(name)
        if nic.vm_id:
            self.attached_delete_attempts.append(name)
            return failed(FailureKind.COMMAND_FAILED, f"NicInUse: '{name}' is attached")
        del self.nics[nic.name.lower()]
        return ok()

    def attach_nic(self, vm_name: str, resource_group: str, nic_id: str) -> AzResult[None]:
        if (failure := self._record("attach_nic", vm_name, nic_id)) is not None:
            return failure
        vm = self.vms.get(vm_name.lower())
        nic = self._find_nic(nic_id)
        if vm is None or nic is None:
            return self._not_found(nic_id if vm else vm_name)
        if nic.vm_id:
            return failed(FailureKind.COMMAND_FAILED, f"NIC '{nic.name}' is already attached")
        nic.vm_id = vm.id
        vm.nic_ids.append(nic.id)
        return ok()

    def detach_nic(self, vm_name: str, resource_group: str, nic_id: str) -> AzResult[None]:
        if (failure := self._record("detach_nic", vm_name, nic_id)) is not None:
            return failure
        vm = self.vms.get(vm_name.lower())
        nic = self._find_nic(nic_id)
        if vm is None or nic is None or nic.id not in vm.nic_ids:
            return self._not_found(nic_id)
        if len(vm.nic_ids) == 1:
            return failed(FailureKind.COMMAND_FAILED, "VM must have at least one network interface")
        vm.nic_ids.remove(nic.id)
        nic.vm_id = None
        return ok()

    def set_power(self, vm_name: str, resource_group: str, action: PowerAction) -> AzResult[None]:
        if (failure := self._record("set_power", vm_name, action.value)) is not None:
            return failure
        vm = self.vms.get(vm_name.lower())
        if vm is None:
            return self._not_found(vm_name)
        if action in self.stuck_actions:
            vm.power_state = "PowerState/starting" if action == PowerAction.START else "PowerState/deallocating"
        elif action == PowerAction.START:
            vm.power_state = "PowerState/running"
        else:
            vm.power_state = "PowerState/deallocated"
        return ok()

    def update_nic_ip_config(
        self, nic_name: str, resource_group: str, ip_address: str, ip_config_name: str = "ipconfig1"
    ) -> AzResult[None]:
        if (failure := self._record("update_nic_ip_config", nic_name, ip_address)) is not None:
            return failure
        nic = self._find_nic(nic_name)
        if nic is None:
            return self._not_found(nic_name)
        if self._ip_in_use(ip_address, exclude=nic):
            return failed(FailureKind.COMMAND_FAILED, f"PrivateIPAddressInUse: {ip_address}")
        nic.ips[0] = ip_address
        nic.allocation = "Static"
        return ok()

    def set_accelerated_networking(self, nic_id: str, enabled: bool) -> AzResult[None]:
        if (failure := self._record("set_accelerated_networking", nic_id, str(enabled))) is not None:
            return failure
        nic = self._find_nic(nic_id)
        if nic is None:
            return self._not_found(nic_id)
        nic.accelerated_networking = enabled
        return ok()
