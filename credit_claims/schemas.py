"""
schemas.py — Domain records and Pydantic models for the claim pipeline.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import (
    TIERS, DEFAULT_NUM_SAMPLES, DEFAULT_SPLIT_RATIO, DEFAULT_EXPORT_TO_DRIVE,
)

Coordinate = tuple[float, float]  # (longitude, latitude)


# ─── Pipeline records ─────────────────────────────────────────

@dataclass(frozen=True)
class SiteGeometry:
    """Polygon boundary and site name extracted from a KML document."""
    site_name: str
    polygon: tuple[Coordinate, ...]

    @property
    def vertex_count(self) -> int:
        return len(self.polygon)


@dataclass
class AllocationResult:
    credits_requested: int
    credit_ids: list = field(default_factory=list)

    @property
    def credits_allocated(self) -> int:
        return len(self.credit_ids)


# ─── Estimation service ───────────────────────────────────────

class EstimationOptions(BaseModel):
    """Date range and sampling knobs forwarded to the estimation service."""
    model_config = ConfigDict(revalidate_instances="always")

    start_date: date
    end_date: date
    num_samples: int = Field(DEFAULT_NUM_SAMPLES, gt=0)
    split_ratio: float = Field(DEFAULT_SPLIT_RATIO, gt=0, lt=1)
    export_to_drive: bool = DEFAULT_EXPORT_TO_DRIVE

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )
        return self


class EstimationRequest(BaseModel):
    key_path: str
    polygon: list[Coordinate] = Field(..., min_length=3)
    options: EstimationOptions

    def to_payload(self) -> dict:
        """Wire format expected by POST /api/estimate-carbon."""
        return {
            "keyPath": self.key_path,
            "coordinates": [[lng, lat] for lng, lat in self.polygon],
            "options": {
                "startDate": self.options.start_date.isoformat(),
                "endDate": self.options.end_date.isoformat(),
                "numSamples": self.options.num_samples,
                "splitRatio": self.options.split_ratio,
                "exportToGDrive": self.options.export_to_drive,
            },
        }


def _to_decimal(value):
    # bool is an int subclass; a boolean stock is a malformed payload
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    if isinstance(value, float):
        return Decimal(repr(value))
    return value


class EstimationResult(BaseModel):
    """Carbon stock estimate returned by the estimation service."""
    model_config = ConfigDict(populate_by_name=True)

    carbon_stock: Decimal = Field(..., alias="carbonStock", ge=0)
    sequestration: Optional[Decimal] = None
    tier: str

    @field_validator("carbon_stock", "sequestration", mode="before")
    @classmethod
    def coerce_number(cls, v):
        return _to_decimal(v)

    @field_validator("tier")
    @classmethod
    def check_tier(cls, v: str) -> str:
        if v not in TIERS:
            raise ValueError(f"unknown tier {v!r}; expected one of {', '.join(TIERS)}")
        return v


# ─── API responses ────────────────────────────────────────────

class Centroid(BaseModel):
    lng: float
    lat: float


class SitePreviewResponse(BaseModel):
    site_name: str
    polygon: list[list[float]]
    vertex_count: int
    centroid: Centroid
    map_url: str
    area_hectares: Optional[float] = None


class OverlapInfo(BaseModel):
    existing_claim_id: str
    existing_site_name: str = ""
    existing_account: str = ""
    overlap_pct: float


class ClaimResponse(BaseModel):
    site_name: str
    polygon: list[list[float]]
    map_url: str
    tier: str
    carbon_stock_tonnes: float
    sequestration_tonnes_per_year: Optional[float] = None
    total_co2e_tonnes: float
    credits_requested: int
    credits_allocated: int
    credit_ids: list[Optional[int]] = []
    overlaps: list[OverlapInfo] = []
    has_overlap_warning: bool = False
    message: str = ""


class TierCredits(BaseModel):
    owned: int
    available: int


class AccountSummaryResponse(BaseModel):
    address: str
    registered: bool
    credits: dict[str, TierCredits] = {}
    reputation: Optional[int] = None
    bct_balance: Optional[int] = None


class PoolCounts(BaseModel):
    general_pool_count: int
    priority_reserve_count: int


class PoolStatusResponse(BaseModel):
    tier: str
    general_pool_count: int
    priority_reserve_count: int
    total_capacity: int
    total_so_far: int
    conversion_rate: float


class CreditResponse(BaseModel):
    id: int
    tier: str
    location: str
    coordinates: list[str]
    owner: str
    is_retired: bool
