"""Post-run verification of replaced NICs.

Re-reads the replacement NIC of every VM whose workflow succeeded and checks
that it ended on the requested address with static allocation.
"""

import logging
from dataclasses import dataclass

from nicswap.control_plane import AzureControlPlane
from nicswap.models import ReplacementOutcome

logger = logging.getLogger(__name__)

STATIC_ALLOCATION = "Static"


@dataclass
class VerificationResult:
    """Observed state of one replacement NIC."""

    vm_name: str
    nic_name: str | None
    expected_ip: str | None
    actual_ip: str | None
    allocation: str | None
    passed: bool
    message: str = ""


@dataclass
class VerificationReport:
    """Verification results for a batch."""

    results: list[VerificationResult]

    @property
    def passed(self) -> int:
        """Number of NICs that match their target."""
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        """Number of NICs that do not match their target."""
        return sum(1 for r in self.results if not r.passed)


class ReplacementVerifier:
    """Compare replacement NICs with their requested addresses."""

    def __init__(self, control_plane: AzureControlPlane):
        self.control_plane = control_plane

    def verify(self, outcome: ReplacementOutcome) -> VerificationResult:
        """Verify one successful outcome.

        Args:
            outcome: Outcome of a workflow run (the NIC name it used is read from here)

        Returns:
            VerificationResult (passed iff IP matches target and allocation is Static)
        """
        if not outcome.new_nic_name:
            return VerificationResult(
                outcome.vm_name, None, outcome.target_ip, None, None, False, "No replacement NIC recorded"
            )

        result = self.control_plane.get_nic(outcome.new_nic_name, outcome.resource_group)
        if result.failed:
            logger.warning(f"Could not read NIC '{outcome.new_nic_name}' for verification")
            return VerificationResult(
                outcome.vm_name,
                outcome.new_nic_name,
                outcome.target_ip,
                None,
                None,
                False,
                f"NIC not readable: {result.detail}",
            )

        nic = result.unwrap()
        passed = nic.private_ip_address == outcome.target_ip and nic.ip_allocation_method == STATIC_ALLOCATION
        status = "PASS" if passed else "FAIL"
        logger.info(
            f"{status} - VM: {outcome.vm_name} | NIC: {nic.name} | "
            f"IP: {nic.private_ip_address} | Allocation: {nic.ip_allocation_method}"
        )
        return VerificationResult(
            vm_name=outcome.vm_name,
            nic_name=nic.name,
            expected_ip=outcome.target_ip,
            actual_ip=nic.private_ip_address,
            allocation=nic.ip_allocation_method,
            passed=passed,
        )

    def verify_all(self, outcomes: list[ReplacementOutcome]) -> VerificationReport:
        """Verify every successful outcome; failed ones are not checked."""
        return VerificationReport([self.verify(o) for o in outcomes if o.succeeded])


__all__ = ["ReplacementVerifier", "VerificationReport", "VerificationResult"]
