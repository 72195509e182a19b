"""
Pydantic models for resource pool references, allocations and usage.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Sentinel used by vSphere for "no upper bound" on a ResourceAllocationInfo limit
UNLIMITED = -1

# Value reported for expandable reservation when the server omits it
EXPANDABLE_RESERVATION_DEFAULT = False

SHARES_LEVEL_LABELS = {
    "custom": "Custom",
    "high": "High",
    "low": "Low",
    "normal": "Normal",
}


class ObjectReference(BaseModel):
    """Managed object reference (kind + moId)."""
    model_config = ConfigDict(frozen=True)

    type: str   # ResourcePool, VirtualApp, ...
    value: str  # moId, e.g. resgroup-8

    def __str__(self) -> str:
        return f"{self.type}:{self.value}"


class LevelShares(BaseModel):
    """Shares set to one of the predefined levels."""
    model_config = ConfigDict(frozen=True)

    level: Literal["normal", "high", "low"] = "normal"

    @property
    def label(self) -> str:
        return SHARES_LEVEL_LABELS[self.level]


class CustomShares(BaseModel):
    """Shares set to an explicit weight."""
    model_config = ConfigDict(frozen=True)

    level: Literal["custom"] = "custom"
    shares: int

    @property
    def label(self) -> str:
        return SHARES_LEVEL_LABELS[self.level]


Shares = Annotated[Union[LevelShares, CustomShares], Field(discriminator="level")]


class AllocationInfo(BaseModel):
    """CPU or memory allocation of a resource pool (native units: MHz / MB)."""
    model_config = ConfigDict(frozen=True)

    shares: Shares = Field(default_factory=LevelShares)
    reservation: int = 0
    limit: int = UNLIMITED
    expandable_reservation: Optional[bool] = None

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def expandable(self) -> bool:
        """Expandable reservation flag, EXPANDABLE_RESERVATION_DEFAULT when not reported."""
        if self.expandable_reservation is None:
            return EXPANDABLE_RESERVATION_DEFAULT
        return self.expandable_reservation


class UsageSnapshot(BaseModel):
    """Runtime usage of one resource dimension."""
    model_config = ConfigDict(frozen=True)

    overall_usage: int = 0
    max_usage: int = 0

    @property
    def utilization(self) -> float:
        """Percentage of max_usage consumed, 0.0 when max_usage is zero."""
        if not self.max_usage:
            return 0.0
        return 100.0 * self.overall_usage / self.max_usage


class ResourcePoolRecord(BaseModel):
    """Typed view of one resolved resource pool."""
    model_config = ConfigDict(frozen=True)

    reference: ObjectReference
    name: str = ""
    cpu_allocation: AllocationInfo = Field(default_factory=AllocationInfo)
    memory_allocation: AllocationInfo = Field(default_factory=AllocationInfo)
    cpu_usage: UsageSnapshot = Field(default_factory=UsageSnapshot)
    memory_usage: UsageSnapshot = Field(default_factory=UsageSnapshot)
    properties: Optional[Dict[str, Any]] = None  # full property set, JSON-safe
