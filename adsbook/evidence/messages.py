"""Structured pack messages describing partial or missing data."""

from __future__ import annotations

from typing import TYPE_CHECKING

from adsbook.models.evidence import PackMessage

if TYPE_CHECKING:
    from collections.abc import Iterable


def legacy_warnings_from_messages(messages: Iterable[PackMessage]) -> list[str]:
    return [m.text for m in messages if m.level in ("warn", "error")]


def describe_chunk_failure_kind(chunks_failed: int, timeout_failures: int) -> str:
    if timeout_failures == chunks_failed:
        return "timeouts"
    if timeout_failures == 0:
        return "errors"
    return "mixed errors"


def build_chunk_failure_message(
    label: str,
    chunks_total: int,
    chunks_failed: int,
    timeout_failures: int,
    all_chunks_failed_suffix: str,
    is_sp_reconciliation: bool = False,
) -> PackMessage | None:
    """Describe a chunked load that lost some or all of its chunks; None if nothing failed."""
    if chunks_failed <= 0:
        return None
    kind = describe_chunk_failure_kind(chunks_failed, timeout_failures)
    all_failed = chunks_total > 0 and chunks_failed == chunks_total
    meta = {
        "label": label,
        "chunks_total": chunks_total,
        "chunks_failed": chunks_failed,
        "failure_kind": kind,
    }

    if is_sp_reconciliation:
        if all_failed:
            return PackMessage(
                level="error",
                code="CHUNK_FAILED",
                text=(
                    f"SP reconciliation failed: all {chunks_total}/{chunks_total} chunks failed "
                    f"({kind}). See meta.fetch_diagnostics."
                ),
                meta={**meta, "impact": all_chunks_failed_suffix},
            )
        return PackMessage(
            level="warn",
            code="CHUNK_PARTIAL",
            text=(
                f"SP reconciliation partial: {chunks_failed}/{chunks_total} chunks failed "
                f"({kind}). See meta.fetch_diagnostics."
            ),
            meta=meta,
        )

    if all_failed:
        return PackMessage(
            level="error",
            code="CHUNK_FAILED",
            text=(
                f"Failed loading {label}: all {chunks_total} chunks failed ({kind}); "
                f"{all_chunks_failed_suffix}"
            ),
            meta=meta,
        )
    return PackMessage(
        level="warn",
        code="CHUNK_PARTIAL",
        text=(
            f"Failed loading {label}: partial data due to chunk failures "
            f"({chunks_failed}/{chunks_total} chunks failed; {kind}); "
            "using successful chunks only."
        ),
        meta=meta,
    )


def build_no_channel_messages(
    has_sb_campaign_candidates: bool, has_sd_campaign_candidates: bool
) -> list[PackMessage]:
    messages: list[PackMessage] = []
    if not has_sb_campaign_candidates:
        messages.append(
            PackMessage(
                level="info",
                code="NO_SB_FOR_ASIN",
                text="No Sponsored Brands data for this ASIN in the selected range.",
            )
        )
    if not has_sd_campaign_candidates:
        messages.append(
            PackMessage(
                level="info",
                code="NO_SD_FOR_ASIN",
                text="No Sponsored Display data for this ASIN in the selected range.",
            )
        )
    return messages


def build_dataset_empty_message(label: str, start: str, end: str) -> PackMessage:
    return PackMessage(
        level="info",
        code="DATASET_EMPTY",
        text=f"No {label} rows found between {start} and {end}.",
        meta={"label": label, "start": start, "end": end},
    )
