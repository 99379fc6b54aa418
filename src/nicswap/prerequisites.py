"""
Prerequisites Checker Module

Verifies the Azure CLI is installed and authenticated before a batch runs.

Security Requirements:
- No credential storage
- Read-only checks
- No shell=True in subprocess calls
"""

import logging
import shutil
from dataclasses import dataclass
from typing import ClassVar

from nicswap.control_plane import AzureControlPlane

logger = logging.getLogger(__name__)

AZ_INSTALL_URL = "https://docs.microsoft.com/en-us/cli/azure/install-azure-cli"


class PrerequisiteError(Exception):
    """Raised when prerequisites are missing."""

    pass


@dataclass
class PrerequisiteResult:
    """Result of prerequisite checks."""

    all_available: bool
    missing: list[str]
    subscription: str | None = None


class PrerequisiteChecker:
    """Check the Azure CLI is available and logged in."""

    REQUIRED_TOOLS: ClassVar[list[str]] = ["az"]

    @classmethod
    def check_tool(cls, tool_name: str) -> bool:
        """Check if a tool is available in PATH (shutil.which, no subprocess)."""
        result = shutil.which(tool_name)
        if result:
            logger.debug(f"Found {tool_name} at {result}")
            return True
        logger.debug(f"Tool not found: {tool_name}")
        return False

    @classmethod
    def check_all(cls, control_plane: AzureControlPlane) -> PrerequisiteResult:
        """Check installed tools, then Azure authentication.

        Args:
            control_plane: Client used to run `az account show`

        Returns:
            PrerequisiteResult
        """
        logger.info("Verifying Azure CLI installation...")
        missing = [tool for tool in cls.REQUIRED_TOOLS if not cls.check_tool(tool)]
        if missing:
            logger.error(f"Missing prerequisites: {', '.join(missing)}")
            return PrerequisiteResult(all_available=False, missing=missing)
        logger.info("Azure CLI is installed")

        logger.info("Verifying Azure authentication...")
        account = control_plane.show_account()
        if account.failed:
            logger.error("Not authenticated to Azure. Please run 'az login'")
            return PrerequisiteResult(all_available=False, missing=["az login"])

        logger.info(f"Authenticated to subscription: {account.value}")
        return PrerequisiteResult(all_available=True, missing=[], subscription=account.value)

    @classmethod
    def require(cls, control_plane: AzureControlPlane) -> PrerequisiteResult:
        """Like check_all, but raise if anything is missing.

        Raises:
            PrerequisiteError: With install/login guidance
        """
        result = cls.check_all(control_plane)
        if result.all_available:
            return result
        if "az" in result.missing:
            raise PrerequisiteError(
                f"Azure CLI is not installed or not in PATH. Install from: {AZ_INSTALL_URL}"
            )
        raise PrerequisiteError("Not authenticated to Azure. Please run 'az login'")


__all__ = ["PrerequisiteChecker", "PrerequisiteError", "PrerequisiteResult"]
