"""Evidence pack assembly: bounded window, chunked loads, coverage selection, bridge."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from adsbook import metrics
from adsbook.errors import PackIncompleteError, ProductNotFoundError
from adsbook.evaluation.kiv import derive_kiv_carry_forward
from adsbook.evidence.aggregate import aggregate_rows, totals
from adsbook.evidence.bridge import compute_attribution_bridge
from adsbook.evidence.chunks import fetch_by_date_chunks, require_complete_chunk_fetch
from adsbook.evidence.coverage import select_rows_for_coverage, sum_spend
from adsbook.evidence.messages import (
    build_chunk_failure_message,
    build_dataset_empty_message,
    build_no_channel_messages,
    legacy_warnings_from_messages,
)
from adsbook.evidence.ranges import compute_bounded_range, normalize_range

if TYPE_CHECKING:
    from collections.abc import Callable

    from adsbook.config import Settings
    from adsbook.context import AccountContext
    from adsbook.models.evidence import PackMessage
    from adsbook.protocols import EvidenceSourcePort

logger = structlog.get_logger()

PACK_KIND = "aph_product_baseline_data_pack_v3"

CAMPAIGN_KEYS = ("campaign_id", "campaign_name")
TARGET_KEYS = ("campaign_id", "ad_group_id", "target_id", "targeting", "match_type")


class _PackRun:
    """Mutable state of one build: diagnostics and messages collected per dataset."""

    def __init__(self, chunk_days: int, require_complete: bool, start: str, end: str) -> None:
        self.chunk_days = chunk_days
        self.require_complete = require_complete
        self.start = start
        self.end = end
        self.messages: list[PackMessage] = []
        self.diagnostics: dict[str, Any] = {}
        self.incomplete = False

    def load(
        self,
        key: str,
        label: str,
        run_chunk: Callable[[str, str], list[Any]],
        all_failed_suffix: str,
        is_sp_reconciliation: bool = False,
    ) -> list[dict[str, Any]]:
        result = fetch_by_date_chunks(self.start, self.end, run_chunk, self.chunk_days)
        self.diagnostics[key] = result.diagnostics()

        if not result.complete:
            self.incomplete = True
            timeouts = result.timeout_failures
            failed = result.stats.chunks_failed
            if timeouts:
                metrics.chunk_failures_total.labels(dataset=key, kind="timeout").inc(timeouts)
            if failed - timeouts:
                metrics.chunk_failures_total.labels(dataset=key, kind="error").inc(failed - timeouts)

            message = build_chunk_failure_message(
                label=label,
                chunks_total=result.stats.chunks_total,
                chunks_failed=failed,
                timeout_failures=timeouts,
                all_chunks_failed_suffix=all_failed_suffix,
                is_sp_reconciliation=is_sp_reconciliation,
            )
            if message is not None:
                self.messages.append(message)

            if self.require_complete:
                try:
                    require_complete_chunk_fetch(
                        label, result, context={"dataset": key, "start": self.start, "end": self.end}
                    )
                except PackIncompleteError as exc:
                    exc.messages = [m.model_dump(exclude_none=True) for m in self.messages]
                    exc.fetch_diagnostics = dict(self.diagnostics)
                    raise
        elif not result.rows:
            self.messages.append(build_dataset_empty_message(label, self.start, self.end))

        return list(result.rows)


class EvidencePackBuilder:
    """Builds the baseline evidence pack for one ASIN.

    Partial chunk failures degrade the pack (messages plus
    ``metadata.status == "pack_incomplete"``) unless ``require_complete`` is
    set, in which case the first incomplete dataset raises
    :class:`PackIncompleteError`.
    """

    def __init__(
        self,
        source: EvidenceSourcePort,
        *,
        chunk_days: int = 7,
        all_range_cap_days: int = 365,
        campaign_limit: int = 50,
        target_limit: int = 500,
        coverage_threshold: float = 0.95,
        require_complete: bool = False,
    ) -> None:
        self.source = source
        self.chunk_days = chunk_days
        self.all_range_cap_days = all_range_cap_days
        self.campaign_limit = campaign_limit
        self.target_limit = target_limit
        self.coverage_threshold = coverage_threshold
        self.require_complete = require_complete

    @classmethod
    def from_settings(
        cls, source: EvidenceSourcePort, settings: Settings, require_complete: bool | None = None
    ) -> EvidencePackBuilder:
        return cls(
            source,
            chunk_days=settings.chunk_days,
            all_range_cap_days=settings.all_range_cap_days,
            campaign_limit=settings.coverage_campaign_limit,
            target_limit=settings.coverage_target_limit,
            coverage_threshold=settings.coverage_threshold,
            require_complete=(
                settings.require_complete_packs if require_complete is None else require_complete
            ),
        )

    def build(
        self,
        ctx: AccountContext,
        asin: str,
        requested_range: str | None = "baseline",
        end_date: str | None = None,
        *,
        today: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        started = time.monotonic()
        normalized_range = normalize_range(requested_range)
        try:
            pack = self._build(ctx, asin, normalized_range, end_date, today, now)
        except PackIncompleteError:
            metrics.pack_builds_total.labels(status="rejected_incomplete").inc()
            raise
        finally:
            metrics.pack_build_duration_seconds.labels(requested_range=normalized_range).observe(
                time.monotonic() - started
            )
        status = pack["metadata"]["status"]
        metrics.pack_builds_total.labels(status=status).inc()
        logger.info(
            "Evidence pack built",
            asin=pack["product"]["asin"],
            requested_range=normalized_range,
            status=status,
            messages=len(pack["metadata"]["messages"]),
        )
        return pack

    def _build(
        self,
        ctx: AccountContext,
        asin: str,
        requested_range: str,
        end_date: str | None,
        today: str | None,
        now: datetime | None,
    ) -> dict[str, Any]:
        asin_norm = asin.strip().upper()
        product = self.source.get_product(ctx, asin_norm)
        if product is None:
            raise ProductNotFoundError(asin_norm)

        window = compute_bounded_range(
            requested_range, end_date, all_cap_days=self.all_range_cap_days, today=today
        )
        run = _PackRun(self.chunk_days, self.require_complete, window.start_bound, window.end_bound)
        src = self.source

        sp_ids = src.campaign_ids_for_asin(ctx, "SP", asin_norm)
        sb_ids = src.campaign_ids_for_asin(ctx, "SB", asin_norm)
        sd_ids = src.campaign_ids_for_asin(ctx, "SD", asin_norm)

        sales_rows = run.load(
            "sales_trend_daily",
            "sales trend",
            lambda s, e: list(src.product_sales_rows(ctx, asin_norm, s, e)),
            "si_ppc_cost_total is incomplete.",
        )

        def perf(channel: str, grain: str, **filters: Any) -> Callable[[str, str], list[Any]]:
            return lambda s, e: list(
                src.performance_rows(ctx, channel=channel, grain=grain, start=s, end=e, **filters)
            )

        sp_target_rows: list[dict[str, Any]] = []
        sp_campaign_rows: list[dict[str, Any]] = []
        if sp_ids:
            sp_target_rows = run.load(
                "sp_targeting",
                "SP targeting baseline",
                perf("SP", "target", campaign_ids=sp_ids),
                "SP targets are missing from this pack.",
            )
            sp_campaign_rows = run.load(
                "sp_campaign_reconciliation",
                "SP campaign reconciliation",
                perf("SP", "campaign", campaign_ids=sp_ids),
                "SP attribution bridge values are unreliable.",
                is_sp_reconciliation=True,
            )
        sp_advertised_rows = run.load(
            "sp_advertised_product",
            "SP advertised product",
            perf("SP", "advertised_product", advertised_asin=asin_norm),
            "SP advertised-ASIN spend is unavailable.",
        )

        sb_campaign_rows: list[dict[str, Any]] = []
        sb_advertised_rows: list[dict[str, Any]] = []
        if sb_ids:
            sb_campaign_rows = run.load(
                "sb_campaigns",
                "SB campaigns",
                perf("SB", "campaign", campaign_ids=sb_ids),
                "SB spend totals are unavailable.",
            )
            sb_advertised_rows = run.load(
                "sb_advertised_product",
                "SB advertised product",
                perf("SB", "advertised_product", advertised_asin=asin_norm),
                "SB attributed spend is unavailable.",
            )

        sd_campaign_rows: list[dict[str, Any]] = []
        if sd_ids:
            sd_campaign_rows = run.load(
                "sd_campaigns",
                "SD campaigns",
                perf("SD", "campaign", campaign_ids=sd_ids),
                "SD spend totals are unavailable.",
            )

        run.messages.extend(
            build_no_channel_messages(
                has_sb_campaign_candidates=bool(sb_ids), has_sd_campaign_candidates=bool(sd_ids)
            )
        )

        sp_campaigns = aggregate_rows(sp_campaign_rows, CAMPAIGN_KEYS)
        sp_targets = aggregate_rows(sp_target_rows, TARGET_KEYS)
        mapped_spend_total = sum_spend(sp_targets)
        selection = select_rows_for_coverage(
            mapped_spend_total,
            sp_campaigns,
            sp_targets,
            campaign_limit=self.campaign_limit,
            target_limit=self.target_limit,
            coverage_threshold=self.coverage_threshold,
        )

        si_ppc_cost_total = sum(float(r.get("ppc_cost") or 0) for r in sales_rows)
        sb_spend_total = sum_spend(sb_campaign_rows)
        sb_attributed = sum_spend(sb_advertised_rows)
        sd_spend_total = sum_spend(sd_campaign_rows)

        bridge = compute_attribution_bridge(
            si_ppc_cost_total=si_ppc_cost_total,
            # attributed SP spend is the mapped target spend the coverage selection uses
            sp_attributed_spend_total=mapped_spend_total,
            sp_advertised_asin_spend_total=sum_spend(sp_advertised_rows),
            sp_mapped_campaign_spend_total=sum_spend(sp_campaigns),
            sb_attributed_asin_spend_total=sb_attributed,
            sb_spend_total_unattributed=sb_spend_total,
            sd_spend_total_unattributed=sd_spend_total,
        )

        generated_at = (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        messages = [m.model_dump(exclude_none=True) for m in run.messages]
        return {
            "kind": PACK_KIND,
            "generated_at": generated_at,
            "account_id": ctx.account_id,
            "marketplace": ctx.marketplace,
            "meta": {"fetch_diagnostics": run.diagnostics},
            "metadata": {
                "requested_range": requested_range,
                "effective_window": {"start": window.start_bound, "end": window.end_bound},
                "status": "pack_incomplete" if run.incomplete else "complete",
                "warnings": legacy_warnings_from_messages(run.messages),
                "messages": messages,
            },
            "window": {"start": window.start_bound, "end": window.end_bound},
            "product": {
                "asin": asin_norm,
                "title": product["title"],
                "driver_campaign_intents": [dict(i) for i in src.list_driver_intents(ctx, asin_norm)],
                "kiv_backlog": derive_kiv_carry_forward(src.list_kiv_items(ctx, asin_norm), now=now),
            },
            "sales_trend_daily": sorted((dict(r) for r in sales_rows), key=lambda r: r["date"]),
            "ads_baseline": {
                "sp": {
                    "totals": totals(sp_campaigns),
                    "coverage": {
                        "mapped_spend_total": mapped_spend_total,
                        "included_spend_total": selection.included_spend_total,
                        "coverage_pct": selection.coverage_pct,
                        "campaigns_included": len(selection.campaigns),
                        "targets_included": len(selection.targets),
                    },
                    "campaigns": selection.campaigns,
                    "targets": selection.targets,
                },
                "sb": {
                    "spend_total": sb_spend_total,
                    "attributed_asin_spend_total": sb_attributed,
                    "campaign_count": len({r["campaign_id"] for r in sb_campaign_rows}),
                },
                "sd": {
                    "spend_total": sd_spend_total,
                    "campaign_count": len({r["campaign_id"] for r in sd_campaign_rows}),
                },
                "ppc_attribution_bridge": bridge.model_dump(),
            },
        }
