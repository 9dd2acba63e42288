"""PPC attribution bridge: total ad cost versus SP spend attributable to the ASIN."""

from __future__ import annotations

import math

from adsbook.models.evidence import AttributionBridge, BridgeCoverage


def _clamp(value: float | None) -> float:
    if value is None:
        return 0.0
    number = float(value)
    if not math.isfinite(number):
        return 0.0
    return max(0.0, number)


def _ratio(numerator: float, denominator: float) -> float | None:
    if denominator <= 0:
        return None
    return round(numerator / denominator, 6)


def compute_attribution_bridge(
    si_ppc_cost_total: float | None,
    sp_attributed_spend_total: float | None,
    sp_advertised_asin_spend_total: float | None,
    sp_mapped_campaign_spend_total: float | None,
    sb_attributed_asin_spend_total: float | None = 0.0,
    sb_spend_total_unattributed: float | None = 0.0,
    sd_spend_total_unattributed: float | None = 0.0,
) -> AttributionBridge:
    si = _clamp(si_ppc_cost_total)
    attributed = _clamp(sp_attributed_spend_total)
    advertised = _clamp(sp_advertised_asin_spend_total)
    mapped = _clamp(sp_mapped_campaign_spend_total)
    sb_attributed = _clamp(sb_attributed_asin_spend_total)

    return AttributionBridge(
        si_ppc_cost_total=si,
        sp_attributed_spend_total=attributed,
        sp_advertised_asin_spend_total=advertised,
        sp_mapped_campaign_spend_total=mapped,
        sb_attributed_asin_spend_total=sb_attributed,
        sb_spend_total_unattributed=_clamp(sb_spend_total_unattributed),
        sd_spend_total_unattributed=_clamp(sd_spend_total_unattributed),
        sp_unattributed_spend_total=max(0.0, mapped - attributed),
        si_gap_vs_sp_attributed_total=max(0.0, si - attributed),
        coverage=BridgeCoverage(
            sp_vs_si_pct=_ratio(attributed, si),
            sp_advertised_vs_si_pct=_ratio(advertised, si),
            sp_vs_sp_campaign_pct=_ratio(attributed, mapped),
            sb_attributed_vs_si_pct=_ratio(sb_attributed, si),
        ),
    )
