"""
Allocation domain objects
Targets, holdings, computed class status and ranked assets
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

UNCLASSIFIED_CLASS_ID = "unclassified"


@dataclass(frozen=True)
class AllocationTarget:
    """User-defined target band for an asset class; absent bounds mean no constraint"""
    class_id: str
    class_name: str
    target_min: Decimal = Decimal("0")
    target_max: Decimal = Decimal("100")
    min_allocation_value: Optional[Decimal] = None
    max_asset_count: Optional[int] = None

    def __post_init__(self):
        if self.target_min < Decimal("0") or self.target_max > Decimal("100"):
            raise ValueError("Target percentages must be within 0..100")
        if self.target_min > self.target_max:
            raise ValueError("target_min cannot exceed target_max")
        if self.min_allocation_value is not None and self.min_allocation_value < Decimal("0"):
            raise ValueError("min_allocation_value cannot be negative")
        if self.max_asset_count is not None and self.max_asset_count < 0:
            raise ValueError("max_asset_count cannot be negative")

    @property
    def midpoint(self) -> Decimal:
        return (self.target_min + self.target_max) / Decimal("2")


@dataclass(frozen=True)
class PortfolioHolding:
    """Non-ignored portfolio position"""
    asset_id: str
    symbol: str
    quantity: Decimal
    currency: str
    class_id: Optional[str] = None
    subclass_id: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class PriceQuote:
    """Latest known price of a symbol"""
    symbol: str
    price: Decimal
    currency: str
    fetched_at: datetime
    source: str = "unknown"


@dataclass(frozen=True)
class AllocationStatus:
    """Computed allocation of one asset class"""
    class_id: str
    class_name: str
    current_value: Decimal
    current_allocation_pct: Decimal
    target_min: Decimal
    target_max: Decimal
    target_midpoint_pct: Decimal
    allocation_gap: Decimal
    is_over_allocated: bool


@dataclass(frozen=True)
class AssetWithContext:
    """Asset enriched with its class status and score - unit of recommendation work"""
    asset_id: str
    symbol: str
    class_id: str
    class_name: str
    score: Decimal
    current_value: Decimal
    allocation_status: AllocationStatus
    min_allocation_value: Optional[Decimal] = None
    max_asset_count: Optional[int] = None

    @property
    def is_over_allocated(self) -> bool:
        return self.allocation_status.is_over_allocated
