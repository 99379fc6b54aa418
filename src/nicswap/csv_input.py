"""CSV input for nicswap batches.

Replacement CSV columns:
    VMName,ResourceGroup,VNetResourceGroup,VNetName,SubnetName,NewNicIPAddress

The legacy column name SecondaryIPAddress is accepted in place of
NewNicIPAddress. Values are trimmed (including stray carriage returns) and
rows without a VM name are skipped.

Accelerated networking CSV columns:
    VMName,ResourceGroup,EnableAcceleratedNetworking
"""

import csv
import logging
from pathlib import Path

from nicswap.accelerated_networking import AcceleratedNetworkingRequest
from nicswap.models import ReplacementRequest

logger = logging.getLogger(__name__)

REPLACEMENT_COLUMNS = ["VMName", "ResourceGroup", "VNetResourceGroup", "VNetName", "SubnetName"]
TARGET_IP_COLUMN = "NewNicIPAddress"
LEGACY_TARGET_IP_COLUMN = "SecondaryIPAddress"
ACCELERATED_NETWORKING_COLUMNS = ["VMName", "ResourceGroup", "EnableAcceleratedNetworking"]


class CSVInputError(Exception):
    """Raised when an input CSV cannot be read."""

    pass


def _read_rows(path: Path, required: list[str]) -> tuple[list[str], list[dict[str, str]]]:
    if not path.is_file():
        raise CSVInputError(f"CSV file not found: {path}")
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            header = [name.strip() for name in (reader.fieldnames or [])]
            reader.fieldnames = header
            rows = [
                {key: (value or "").strip() for key, value in row.items() if key is not None}
                for row in reader
            ]
    except (OSError, csv.Error, UnicodeDecodeError) as e:
        raise CSVInputError(f"Failed to read CSV file {path}: {e}") from e

    for column in required:
        if column not in header:
            raise CSVInputError(
                f"Required column '{column}' not found in CSV. Required columns: {', '.join(required)}"
            )
    return header, rows


def load_replacement_requests(path: str | Path) -> list[ReplacementRequest]:
    """Read replacement requests from a CSV file.

    Args:
        path: CSV file path

    Returns:
        List of ReplacementRequest in file order

    Raises:
        CSVInputError: If the file is missing, unreadable or lacks required columns
    """
    path = Path(path)
    header, rows = _read_rows(path, REPLACEMENT_COLUMNS)

    if TARGET_IP_COLUMN in header:
        ip_column = TARGET_IP_COLUMN
    elif LEGACY_TARGET_IP_COLUMN in header:
        ip_column = LEGACY_TARGET_IP_COLUMN
        logger.debug(f"Using legacy column '{LEGACY_TARGET_IP_COLUMN}' for target IP")
    else:
        raise CSVInputError(
            f"Required column '{TARGET_IP_COLUMN}' or '{LEGACY_TARGET_IP_COLUMN}' not found in CSV"
        )

    requests = [
        ReplacementRequest(
            vm_name=row["VMName"],
            resource_group=row["ResourceGroup"],
            vnet_resource_group=row["VNetResourceGroup"],
            vnet_name=row["VNetName"],
            subnet_name=row["SubnetName"],
            target_ip=row.get(ip_column, ""),
        )
        for row in rows
        if row.get("VMName")
    ]
    logger.info(f"Successfully validated CSV with {len(requests)} VMs")
    return requests


def load_accelerated_networking_requests(path: str | Path) -> list[AcceleratedNetworkingRequest]:
    """Read accelerated networking requests from a CSV file.

    Raises:
        CSVInputError: If the file is missing, unreadable or lacks required columns
    """
    path = Path(path)
    _, rows = _read_rows(path, ACCELERATED_NETWORKING_COLUMNS)
    return [
        AcceleratedNetworkingRequest(
            vm_name=row["VMName"],
            resource_group=row["ResourceGroup"],
            enable=row["EnableAcceleratedNetworking"],
        )
        for row in rows
        if row.get("VMName")
    ]


__all__ = [
    "CSVInputError",
    "load_accelerated_networking_requests",
    "load_replacement_requests",
]
