"""Prometheus metric definitions for adsbook."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# --- Evidence packs ---

pack_build_duration_seconds = Histogram(
    "adsbook_pack_build_duration_seconds",
    "Time spent building an evidence pack",
    labelnames=["requested_range"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

pack_builds_total = Counter(
    "adsbook_pack_builds_total",
    "Evidence pack builds by resulting status",
    labelnames=["status"],
)

chunk_failures_total = Counter(
    "adsbook_chunk_failures_total",
    "Failed date chunks while loading evidence datasets",
    labelnames=["dataset", "kind"],
)

# --- Imports and validation ---

imports_total = Counter(
    "adsbook_imports_total",
    "Externally authored documents processed",
    labelnames=["kind", "result"],
)

semantic_issues_total = Counter(
    "adsbook_semantic_issues_total",
    "Semantic validation issues raised at the import boundary",
    labelnames=["code"],
)

# --- Lifecycle ---

experiment_transitions_total = Counter(
    "adsbook_experiment_transitions_total",
    "Experiment status transitions",
    labelnames=["status"],
)
