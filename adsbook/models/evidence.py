"""Value objects produced by the evidence pack building blocks."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MessageLevel = Literal["debug", "info", "warn", "error"]


class BoundedRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_bound: str
    end_bound: str


class PackMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: MessageLevel
    code: str
    text: str
    meta: dict[str, Any] | None = None


class CoverageSelection(BaseModel):
    model_config = ConfigDict(frozen=True)

    campaigns: list[dict[str, Any]]
    targets: list[dict[str, Any]]
    campaign_included_spend: float
    target_included_spend: float
    included_spend_total: float
    coverage_pct: float | None


class BridgeCoverage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sp_vs_si_pct: float | None
    sp_advertised_vs_si_pct: float | None
    sp_vs_sp_campaign_pct: float | None
    sb_attributed_vs_si_pct: float | None


class AttributionBridge(BaseModel):
    """Reconciles total ad cost against SP spend attributable to the ASIN."""

    model_config = ConfigDict(frozen=True)

    si_ppc_cost_total: float
    sp_attributed_spend_total: float
    sp_advertised_asin_spend_total: float
    sp_mapped_campaign_spend_total: float
    sb_attributed_asin_spend_total: float
    sb_spend_total_unattributed: float
    sd_spend_total_unattributed: float
    sp_unattributed_spend_total: float
    si_gap_vs_sp_attributed_total: float
    coverage: BridgeCoverage


class ChunkError(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_start: str
    chunk_end: str
    message: str
    timed_out: bool


class ChunkStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunks_total: int
    chunks_succeeded: int
    chunks_failed: int
    retries_used_max: int = 0
    failed_ranges_count: int = 0
    failed_ranges_sample: list[dict[str, str]] = Field(default_factory=list)
