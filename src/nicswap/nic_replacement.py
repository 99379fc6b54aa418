"""NIC replacement workflow.

Replaces the primary NIC of one VM while keeping its subnet, NSG and the
address that should survive the swap (the original NIC's secondary IP,
passed in as the request's target_ip).

Sequence (one VM at a time):

    Start -> Inspecting -> Deallocating -> AwaitingDeallocated
          -> NamingResolved -> TempNicCreated -> NewNicAttached
          -> OldNicDetached -> OldNicDeleted -> IPFinalized
          -> Starting -> AwaitingRunning -> Done

The new NIC is created with a temporary address because the target address
is still held by the NIC being replaced. It is moved to the target address
only after the old NIC is gone.

Failure policy:
- Inspection and naming preconditions fail before anything is mutated;
  nothing is rolled back.
- Create/attach/detach failures roll back what this run did so far
  (best effort, each compensating call attempted once).
- Once the old NIC is detached the VM is already on its new NIC, so a
  failed delete of the old NIC or a failed IP update is only a warning.
- Poll timeouts are warnings. A deallocation timeout does NOT stop the
  workflow; the NIC operations that follow are attempted anyway.

run() never raises: every path ends in a ReplacementOutcome.
"""

import hashlib
import logging
import time
from collections.abc import Callable

from nicswap.control_plane import AzureControlPlane, PowerAction, resource_name
from nicswap.models import (
    ErrorKind,
    NICCreateSpec,
    OutcomeStatus,
    Phase,
    ReplacementOutcome,
    ReplacementRequest,
    ReplacementSession,
)
from nicswap.state_poller import StatePoller

logger = logging.getLogger(__name__)

NEW_NIC_SUFFIX = "-nic-new"
ALTERNATE_NIC_SUFFIX = "-nic-replacement"
PRIMARY_IP_CONFIG = "ipconfig1"

DEFAULT_IP_SETTLE_SECONDS = 15
DEFAULT_LEFTOVER_RELEASE_SECONDS = 5
DEFAULT_FALLBACK_IP_PREFIX = "10.0.0."

# Host octet range for hash-derived fallback addresses: 10..254
FALLBACK_HOST_MIN = 10
FALLBACK_HOST_SPAN = 245

# Phases after which the VM has been deallocated and is still on its original NIC
_RESTART_ONLY_PHASES = {
    Phase.DEALLOCATING,
    Phase.AWAITING_DEALLOCATED,
    Phase.NAMING_RESOLVED,
    Phase.OLD_NIC_DETACHED,
    Phase.OLD_NIC_DELETED,
    Phase.IP_FINALIZED,
}


def resolve_new_nic_name(vm_name: str, original_nic_name: str) -> str:
    """Pick the replacement NIC name.

    Prefers "{vm}-nic-new". If the original NIC already carries that name
    (a previous run left its replacement as the live NIC), uses
    "{vm}-nic-replacement" instead. Never adds numeric suffixes.

    Args:
        vm_name: VM name
        original_nic_name: Name of the NIC currently attached to the VM

    Returns:
        Candidate name for the new NIC
    """
    candidate = f"{vm_name}{NEW_NIC_SUFFIX}"
    if original_nic_name.casefold() == candidate.casefold():
        return f"{vm_name}{ALTERNATE_NIC_SUFFIX}"
    return candidate


def fallback_temporary_ip(vm_name: str, prefix: str = DEFAULT_FALLBACK_IP_PREFIX) -> str:
    """Derive a deterministic temporary IP from the VM name.

    Used only when the subnet cannot tell us a free address. The address is
    not checked for availability; a collision surfaces as a NIC create
    failure.

    Args:
        vm_name: VM name
        prefix: First three octets including the trailing dot

    Returns:
        Address in prefix + [10, 254]
    """
    digest = hashlib.sha256(vm_name.encode("utf-8")).digest()
    host = int.from_bytes(digest[:4], "big") % FALLBACK_HOST_SPAN + FALLBACK_HOST_MIN
    return f"{prefix}{host}"


class StepFailed(Exception):
    """Raised inside the workflow when a step cannot continue."""

    def __init__(self, phase: Phase, kind: ErrorKind, message: str, compensate: bool = True):
        super().__init__(message)
        self.phase = phase
        self.kind = kind
        self.message = message
        self.compensate = compensate


class NICReplacementWorkflow:
    """Replace a VM's NIC through the control plane, one request at a time."""

    def __init__(
        self,
        control_plane: AzureControlPlane,
        poller: StatePoller,
        ip_settle_seconds: float = DEFAULT_IP_SETTLE_SECONDS,
        leftover_release_seconds: float = DEFAULT_LEFTOVER_RELEASE_SECONDS,
        fallback_ip_prefix: str = DEFAULT_FALLBACK_IP_PREFIX,
        sleep: Callable[[float], None] = time.sleep,
        progress_callback: Callable[[str], None] | None = None,
    ):
        """Initialize workflow.

        Args:
            control_plane: Azure control-plane client
            poller: Poller used to wait for power-state transitions
            ip_settle_seconds: Pause after deleting the old NIC before claiming its address
            leftover_release_seconds: Pause after deleting a leftover NIC from an earlier run
            fallback_ip_prefix: Prefix for hash-derived temporary addresses
            sleep: Sleep function (injectable for tests)
            progress_callback: Optional callback for progress updates
        """
        self.control_plane = control_plane
        self.poller = poller
        self.ip_settle_seconds = ip_settle_seconds
        self.leftover_release_seconds = leftover_release_seconds
        self.fallback_ip_prefix = fallback_ip_prefix
        self._sleep = sleep
        self.progress_callback = progress_callback

    def _report_progress(self, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(message)
        logger.info(message)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, request: ReplacementRequest) -> ReplacementOutcome:
        """Replace the NIC of one VM.

        Args:
            request: Replacement request

        Returns:
            ReplacementOutcome (never raises)
        """
        session = ReplacementSession(request=request)
        start_time = time.time()

        logger.info("=" * 40)
        logger.info(f"Processing VM: {request.vm_name}")
        logger.info("=" * 40)

        try:
            self._inspect(session)
            self._deallocate(session)
            self._resolve_naming(session)
            self._create_temporary_nic(session)
            self._attach_new_nic(session)
            self._detach_original_nic(session)
            if self._delete_original_nic(session):
                self._finalize_ip(session)
            self._start_vm(session)
        except StepFailed as e:
            logger.error(f"VM '{request.vm_name}' failed at {e.phase.value}: {e.message}")
            if e.compensate:
                self._compensate(session)
            return self._failed_outcome(session, e.phase, e.kind, e.message, start_time)
        except Exception as e:
            logger.exception(f"Unexpected error processing VM '{request.vm_name}'")
            failed_phase = session.attempting
            self._compensate(session)
            return self._failed_outcome(
                session, failed_phase, ErrorKind.TRANSITIONAL, f"Unexpected error: {e}", start_time
            )

        session.advance(Phase.DONE)
        status = OutcomeStatus.SUCCESS_WITH_WARNINGS if session.warnings else OutcomeStatus.SUCCESS
        message = f"Replaced NIC with '{session.new_nic_name}'"
        if session.warnings:
            message += f" with {len(session.warnings)} warning(s)"
            logger.warning(f"Completed NIC update for VM {request.vm_name} with warnings")
        else:
            logger.info(f"Successfully completed NIC update for VM: {request.vm_name}")

        return ReplacementOutcome(
            vm_name=request.vm_name,
            resource_group=request.resource_group,
            status=status,
            phase=Phase.DONE,
            message=message,
            warnings=list(session.warnings),
            new_nic_name=session.new_nic_name,
            temporary_ip=session.temporary_ip,
            final_ip=session.final_ip,
            target_ip=request.target_ip,
            duration=time.time() - start_time,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _inspect(self, session: ReplacementSession) -> None:
        """Read VM, original NIC and any NIC already holding the candidate name."""
        request = session.request
        session.begin(Phase.INSPECTING)
        session.advance(Phase.INSPECTING)
        self._report_progress(f"Getting VM information for {request.vm_name}...")

        vm_result = self.control_plane.get_vm(request.vm_name, request.resource_group)
        if vm_result.failed:
            raise StepFailed(
                Phase.INSPECTING,
                ErrorKind.PRECONDITION if vm_result.not_found else ErrorKind.INSPECTION,
                f"Failed to get VM information. VM may not exist: {vm_result.detail}",
            )
        vm = vm_result.unwrap()
        if not vm.primary_nic_id:
            raise StepFailed(Phase.INSPECTING, ErrorKind.PRECONDITION, "VM has no attached NIC")
        session.location = vm.location

        nic_result = self.control_plane.get_nic(vm.primary_nic_id)
        if nic_result.failed:
            raise StepFailed(
                Phase.INSPECTING,
                ErrorKind.PRECONDITION if nic_result.not_found else ErrorKind.INSPECTION,
                f"Failed to get original NIC information: {nic_result.detail}",
            )
        original = nic_result.unwrap()
        if not original.subnet_id:
            raise StepFailed(Phase.INSPECTING, ErrorKind.INSPECTION, "Original NIC has no subnet")
        session.original_nic = original

        logger.info(f"VM Location: {vm.location}")
        logger.info(f"Original NIC: {original.name}")
        logger.info(f"Original NIC Subnet: {resource_name(original.subnet_id)}")
        logger.info(f"New NIC IP: {request.target_ip}")
        nsg = resource_name(original.network_security_group_id) if original.network_security_group_id else "None"
        logger.info(f"NSG: {nsg}")

        session.new_nic_name = resolve_new_nic_name(request.vm_name, original.name)
        if session.new_nic_name != f"{request.vm_name}{NEW_NIC_SUFFIX}":
            logger.warning(
                f"Original NIC is already named '{original.name}', "
                f"using alternate name '{session.new_nic_name}'"
            )

        existing = self.control_plane.get_nic(session.new_nic_name, request.resource_group)
        if existing.ok:
            candidate = existing.unwrap()
            if candidate.is_attached:
                raise StepFailed(
                    Phase.INSPECTING,
                    ErrorKind.PRECONDITION,
                    f"NIC '{candidate.name}' exists and is attached to "
                    f"'{resource_name(candidate.attached_vm_id or '')}' - cannot delete. "
                    "Please manually clean up this NIC first",
                )
            session.existing_candidate = candidate
        elif not existing.not_found:
            raise StepFailed(
                Phase.INSPECTING,
                ErrorKind.INSPECTION,
                f"Could not verify whether NIC '{session.new_nic_name}' exists: {existing.detail}",
            )

    def _deallocate(self, session: ReplacementSession) -> None:
        request = session.request
        session.begin(Phase.DEALLOCATING)
        self._report_progress(f"Deallocating VM {request.vm_name}...")
        result = self.control_plane.set_power(
            request.vm_name, request.resource_group, PowerAction.DEALLOCATE
        )
        if result.failed:
            raise StepFailed(
                Phase.DEALLOCATING,
                ErrorKind.TRANSITIONAL,
                f"Failed to deallocate VM: {result.detail}",
                compensate=False,
            )
        session.advance(Phase.DEALLOCATING)

        session.begin(Phase.AWAITING_DEALLOCATED)
        outcome = self.poller.wait_for_power_state(request.vm_name, request.resource_group, "deallocated")
        if not outcome.reached:
            # Known risk: continuing on a VM that may not be fully deallocated yet
            session.warn(ErrorKind.TIMEOUT, "VM did not deallocate in expected time")
            logger.warning("VM did not deallocate in expected time")
        session.advance(Phase.AWAITING_DEALLOCATED)

    def _resolve_naming(self, session: ReplacementSession) -> None:
        """Remove a detached leftover NIC holding the candidate name."""
        session.begin(Phase.NAMING_RESOLVED)
        leftover = session.existing_candidate
        if leftover is not None:
            logger.warning(f"Found detached NIC '{leftover.name}' from previous run, deleting...")
            if self._delete_detached_nic(leftover.name, session.request.resource_group):
                self._sleep(self.leftover_release_seconds)
            else:
                logger.warning(f"Could not delete leftover NIC '{leftover.name}'; create may conflict")
        session.advance(Phase.NAMING_RESOLVED)

    def _create_temporary_nic(self, session: ReplacementSession) -> None:
        request = session.request
        original = session.original_nic
        assert original is not None and original.subnet_id and session.new_nic_name
        session.begin(Phase.TEMP_NIC_CREATED)

        logger.info("Querying subnet for available temporary IP...")
        available = self.control_plane.list_available_ips(original.subnet_id)
        if available.ok and available.value:
            session.temporary_ip = available.value[0]
            logger.info(f"Using available IP from subnet: {session.temporary_ip}")
        else:
            session.temporary_ip = fallback_temporary_ip(request.vm_name, self.fallback_ip_prefix)
            logger.warning(f"Using hash-based temporary IP: {session.temporary_ip}")

        self._report_progress(
            f"Creating new NIC: {session.new_nic_name} with temporary IP: {session.temporary_ip}"
        )
        logger.info(f"Will update to final IP ({request.target_ip}) after old NIC is detached and deleted")

        result = self.control_plane.create_nic(
            NICCreateSpec(
                name=session.new_nic_name,
                resource_group=request.resource_group,
                location=session.location or "",
                subnet_id=original.subnet_id,
                private_ip_address=session.temporary_ip,
                network_security_group_id=original.network_security_group_id,
            )
        )
        if result.failed:
            raise StepFailed(
                Phase.TEMP_NIC_CREATED, ErrorKind.TRANSITIONAL, f"Failed to create new NIC: {result.detail}"
            )
        session.new_nic_id = result.unwrap().id
        session.advance(Phase.TEMP_NIC_CREATED)

    def _attach_new_nic(self, session: ReplacementSession) -> None:
        session.begin(Phase.NEW_NIC_ATTACHED)
        request = session.request
        assert session.new_nic_id
        self._report_progress("Attaching new NIC to VM...")
        result = self.control_plane.attach_nic(request.vm_name, request.resource_group, session.new_nic_id)
        if result.failed:
            raise StepFailed(
                Phase.NEW_NIC_ATTACHED, ErrorKind.TRANSITIONAL, f"Failed to attach new NIC: {result.detail}"
            )
        session.advance(Phase.NEW_NIC_ATTACHED)

    def _detach_original_nic(self, session: ReplacementSession) -> None:
        session.begin(Phase.OLD_NIC_DETACHED)
        request = session.request
        original = session.original_nic
        assert original is not None
        self._report_progress("Detaching original NIC...")
        result = self.control_plane.detach_nic(request.vm_name, request.resource_group, original.id)
        if result.failed:
            raise StepFailed(
                Phase.OLD_NIC_DETACHED,
                ErrorKind.TRANSITIONAL,
                f"Failed to detach original NIC: {result.detail}",
            )
        session.advance(Phase.OLD_NIC_DETACHED)

        vm_result = self.control_plane.get_vm(request.vm_name, request.resource_group)
        if vm_result.failed:
            session.warn(ErrorKind.POST_CRITICAL, "Could not re-read VM to confirm NIC attachment")
            return
        attached = [nic_id.casefold() for nic_id in vm_result.unwrap().attached_nic_ids]
        if attached != [(session.new_nic_id or "").casefold()]:
            message = (
                f"VM should carry only '{session.new_nic_name}' but has "
                f"{[resource_name(nic_id) for nic_id in vm_result.unwrap().attached_nic_ids]}"
            )
            logger.warning(message)
            session.warn(ErrorKind.POST_CRITICAL, message)

    def _delete_original_nic(self, session: ReplacementSession) -> bool:
        """Delete the detached original NIC. Failure is a warning.

        Returns:
            True if the original NIC was deleted
        """
        session.begin(Phase.OLD_NIC_DELETED)
        original = session.original_nic
        assert original is not None
        self._report_progress(f"Deleting original NIC: {original.name}")
        if not self._delete_detached_nic(original.name, original.resource_group or session.request.resource_group):
            session.warn(ErrorKind.POST_CRITICAL, f"Failed to delete original NIC '{original.name}' (non-critical)")
            logger.warning("Failed to delete original NIC (non-critical)")
            return False
        session.advance(Phase.OLD_NIC_DELETED)
        return True

    def _finalize_ip(self, session: ReplacementSession) -> None:
        """Move the new NIC from its temporary address to the target address."""
        session.begin(Phase.IP_FINALIZED)
        request = session.request
        assert session.new_nic_name
        logger.info(
            f"Waiting {self.ip_settle_seconds} seconds after deleting NIC to ensure IPs are fully released..."
        )
        self._sleep(self.ip_settle_seconds)

        self._report_progress(
            f"Updating new NIC IP from temporary ({session.temporary_ip}) to final ({request.target_ip})..."
        )
        result = self.control_plane.update_nic_ip_config(
            session.new_nic_name, request.resource_group, request.target_ip, PRIMARY_IP_CONFIG
        )
        if result.failed:
            session.warn(
                ErrorKind.POST_CRITICAL,
                f"Failed to update NIC IP address; NIC keeps temporary IP {session.temporary_ip}",
            )
            logger.warning("Failed to update NIC IP address")
            logger.warning(f"NIC will keep temporary IP: {session.temporary_ip}")
            return
        session.final_ip = request.target_ip
        session.advance(Phase.IP_FINALIZED)

    def _start_vm(self, session: ReplacementSession) -> None:
        session.begin(Phase.STARTING)
        request = session.request
        self._report_progress(f"Starting VM {request.vm_name}...")
        result = self.control_plane.set_power(request.vm_name, request.resource_group, PowerAction.START)
        if result.failed:
            raise StepFailed(
                Phase.STARTING,
                ErrorKind.TRANSITIONAL,
                f"Failed to start VM: {result.detail}",
                compensate=False,
            )
        session.advance(Phase.STARTING)

        session.begin(Phase.AWAITING_RUNNING)
        outcome = self.poller.wait_for_power_state(request.vm_name, request.resource_group, "running")
        if not outcome.reached:
            session.warn(ErrorKind.TIMEOUT, "VM did not start in expected time")
            logger.warning("VM did not start in expected time")
        session.advance(Phase.AWAITING_RUNNING)

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def _compensate(self, session: ReplacementSession) -> None:
        """Undo this run's changes based on the last phase that completed.

        Every action is attempted once; failures are logged and ignored.
        """
        request = session.request
        phase = session.phase

        if phase == Phase.NEW_NIC_ATTACHED:
            logger.warning("Attempting to restore original configuration...")
            detach = self.control_plane.detach_nic(
                request.vm_name, request.resource_group, session.new_nic_id or ""
            )
            if detach.failed:
                logger.error(f"Could not detach new NIC '{session.new_nic_name}'; leaving it in place")
            else:
                self._delete_detached_nic(session.new_nic_name or "", request.resource_group)
        elif phase == Phase.TEMP_NIC_CREATED:
            logger.warning("Cleaning up new NIC...")
            self._delete_detached_nic(session.new_nic_name or "", request.resource_group)
        elif phase not in _RESTART_ONLY_PHASES:
            return

        logger.warning("Attempting to restart VM with original NIC...")
        start = self.control_plane.set_power(request.vm_name, request.resource_group, PowerAction.START)
        if start.failed:
            logger.error(f"Could not restart VM '{request.vm_name}': {start.detail}")

    def _delete_detached_nic(self, nic_name: str, resource_group: str) -> bool:
        """Delete a NIC only after confirming it is not attached to any VM.

        Returns:
            True if the NIC was deleted (or is already gone)
        """
        current = self.control_plane.get_nic(nic_name, resource_group)
        if current.not_found:
            logger.info(f"NIC '{nic_name}' no longer exists")
            return True
        if current.failed:
            logger.error(f"Cannot confirm NIC '{nic_name}' is detached; not deleting")
            return False
        nic = current.unwrap()
        if nic.is_attached:
            logger.error(
                f"NIC '{nic_name}' is attached to '{resource_name(nic.attached_vm_id or '')}'; not deleting"
            )
            return False
        return self.control_plane.delete_nic(nic_name, resource_group).ok

    # ------------------------------------------------------------------

    def _failed_outcome(
        self,
        session: ReplacementSession,
        failed_phase: Phase,
        kind: ErrorKind,
        message: str,
        start_time: float,
    ) -> ReplacementOutcome:
        session.advance(Phase.FAILED)
        return ReplacementOutcome(
            vm_name=session.request.vm_name,
            resource_group=session.request.resource_group,
            status=OutcomeStatus.FAILED,
            phase=failed_phase,
            message=message,
            error_kind=kind,
            warnings=list(session.warnings),
            new_nic_name=session.new_nic_name,
            temporary_ip=session.temporary_ip,
            final_ip=session.final_ip,
            target_ip=session.request.target_ip,
            duration=time.time() - start_time,
        )


__all__ = [
    "ALTERNATE_NIC_SUFFIX",
    "NEW_NIC_SUFFIX",
    "NICReplacementWorkflow",
    "StepFailed",
    "fallback_temporary_ip",
    "resolve_new_nic_name",
]
