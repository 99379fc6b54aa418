"""
Shared test fixtures for nicswap tests.

This module provides common fixtures used across all test types:
- In-memory fake control plane with one running VM
- Workflow and poller wired to the fake (no real sleeping)
- Temporary config locations and CSV files
"""

from pathlib import Path

import pytest

from nicswap.config_manager import ConfigManager
from nicswap.models import ReplacementRequest
from nicswap.nic_replacement import NICReplacementWorkflow
from nicswap.state_poller import StatePoller
from tests.mocks.control_plane_mock import FakeControlPlane

# ============================================================================
# CONTROL PLANE FIXTURES
# ============================================================================


@pytest.fixture
def fake_control_plane():
    """Fake control plane with VM 'vm1' (NIC 'vm1-nic', IPs 10.0.0.4 + 10.0.0.5)."""
    fake = FakeControlPlane()
    fake.add_vm("vm1")
    return fake


@pytest.fixture
def sleeps():
    """Records every sleep requested by the poller or workflow."""
    return []


@pytest.fixture
def poller(fake_control_plane, sleeps):
    """Poller that samples every 10s for at most 1 minute (6 attempts)."""
    return StatePoller(fake_control_plane, check_interval_seconds=10, max_wait_minutes=1, sleep=sleeps.append)


@pytest.fixture
def workflow(fake_control_plane, poller, sleeps):
    """NIC replacement workflow wired to the fake control plane."""
    return NICReplacementWorkflow(fake_control_plane, poller, sleep=sleeps.append)


@pytest.fixture
def replacement_request():
    """Request to move vm1 onto a new NIC holding its secondary IP."""
    return ReplacementRequest(
        vm_name="vm1",
        resource_group="rg1",
        vnet_resource_group="network-rg",
        vnet_name="test-vnet",
        subnet_name="default",
        target_ip="10.0.0.5",
    )


# ============================================================================
# CONFIG / FILE FIXTURES
# ============================================================================


@pytest.fixture
def temp_config_file(tmp_path, monkeypatch):
    """Point ConfigManager's default config at a temporary location.

    Clears NICSWAP_* variables so the host environment cannot leak in.
    """
    config_dir = tmp_path / ".nicswap"
    config_file = config_dir / "config.toml"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_file)
    for name in (
        "POLL_INTERVAL_SECONDS",
        "MAX_WAIT_MINUTES",
        "IP_SETTLE_SECONDS",
        "LEFTOVER_RELEASE_SECONDS",
        "AZ_TIMEOUT_SECONDS",
        "LOG_FILE",
        "FALLBACK_IP_PREFIX",
    ):
        monkeypatch.delenv(f"NICSWAP_{name}", raising=False)
    return config_file


@pytest.fixture
def replacement_csv(tmp_path) -> Path:
    """CSV with two VMs in the documented column layout."""
    path = tmp_path / "vms.csv"
    path.write_text(
        "VMName,ResourceGroup,VNetResourceGroup,VNetName,SubnetName,NewNicIPAddress\n"
        "vm1,rg1,network-rg,test-vnet,default,10.0.0.5\n"
        "vm2,rg1,network-rg,test-vnet,default,10.0.0.7\n"
    )
    return path
