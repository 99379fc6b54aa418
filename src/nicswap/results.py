"""Tagged result type for control-plane operations.

Every Azure CLI call made by nicswap returns an AzResult instead of a
bare string or None. An empty successful response (for example a --no-wait
command) is Ok(None), which is never confused with a failure.

Usage:
    result = control_plane.get_vm("vm1", "rg1")
    if result.ok:
        vm = result.value
    else:
        logger.error(result.detail)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class FailureKind(Enum):
    """Why a control-plane call failed."""

    NOT_FOUND = "not_found"
    COMMAND_FAILED = "command_failed"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"


@dataclass(frozen=True)
class AzResult(Generic[T]):
    """Outcome of a single control-plane call: Ok(value) or Failed(kind, detail)."""

    value: T | None = None
    kind: FailureKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        """True if the call succeeded."""
        return self.kind is None

    @property
    def failed(self) -> bool:
        """True if the call failed."""
        return self.kind is not None

    @property
    def not_found(self) -> bool:
        """True if the call failed because the resource does not exist."""
        return self.kind == FailureKind.NOT_FOUND

    def unwrap(self) -> T:
        """Return the value, raising ValueError on a failed result."""
        if self.kind is not None:
            raise ValueError(f"unwrap() on failed result ({self.kind.value}): {self.detail}")
        return self.value  # type: ignore[return-value]

    def __repr__(self) -> str:
        if self.ok:
            return f"Ok({self.value!r})"
        return f"Failed({self.kind.value}, {self.detail!r})"  # type: ignore[union-attr]


def ok(value: T | None = None) -> AzResult[T]:
    """Build a successful result."""
    return AzResult(value=value)


def failed(kind: FailureKind, detail: str = "") -> AzResult:
    """Build a failed result."""
    return AzResult(kind=kind, detail=detail)


__all__ = ["AzResult", "FailureKind", "failed", "ok"]
