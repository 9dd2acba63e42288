"""SQLAlchemy ORM models mapping to the adsbook database tables."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow_str() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Base(DeclarativeBase):
    pass


# --- Logbook ---


class ExperimentRow(Base):
    __tablename__ = "log_experiments"

    experiment_id: Mapped[str] = mapped_column(Text, primary_key=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    objective: Mapped[str] = mapped_column(Text, nullable=False, default="")
    hypothesis: Mapped[str | None] = mapped_column(Text, nullable=True)
    evaluation_lag_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    evaluation_window_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    primary_metrics_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    guardrails_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    scope_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    scope_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (Index("idx_log_experiments_account", "account_id", "marketplace"),)


class ChangeRow(Base):
    __tablename__ = "log_changes"

    change_id: Mapped[str] = mapped_column(Text, primary_key=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_at: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    why: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(Text, nullable=False, default="manual")
    before_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    after_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        Index("idx_log_changes_account_time", "account_id", "marketplace", "occurred_at"),
    )


class ChangeEntityRow(Base):
    __tablename__ = "log_change_entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    change_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_changes.change_id", ondelete="CASCADE"), nullable=False
    )
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    ad_group_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    keyword_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_log_change_entities_change", "change_id"),)


class ExperimentChangeRow(Base):
    __tablename__ = "log_experiment_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"), nullable=False
    )
    change_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_changes.change_id", ondelete="CASCADE"), nullable=False
    )
    run_id: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("change_id", name="uq_log_experiment_changes_change"),
        Index("idx_log_experiment_changes_experiment", "experiment_id"),
    )


class ChangeValidationRow(Base):
    __tablename__ = "log_change_validations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    change_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_changes.change_id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(Text, nullable=False)
    validated_snapshot_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    checked_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (Index("idx_log_change_validations_change", "change_id", "checked_at"),)


class ExperimentPhaseRow(Base):
    __tablename__ = "log_experiment_phases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"), nullable=False
    )
    run_id: Mapped[str] = mapped_column(Text, nullable=False)
    effective_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        UniqueConstraint("experiment_id", "run_id", name="uq_log_experiment_phases_run"),
    )


class ExperimentEventRow(Base):
    __tablename__ = "log_experiment_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"), nullable=False
    )
    phase_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("log_experiment_phases.id", ondelete="SET NULL"), nullable=True
    )
    run_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    event_date: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_at: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        CheckConstraint(
            "event_type IN ('guardrail_breach', 'manual_intervention', 'stop_loss', "
            "'rollback', 'uploaded_to_amazon')",
            name="ck_log_experiment_events_type",
        ),
        Index("idx_log_experiment_events_experiment", "experiment_id", "occurred_at"),
    )


class EvaluationRow(Base):
    __tablename__ = "log_evaluations"

    evaluation_id: Mapped[str] = mapped_column(Text, primary_key=True)
    experiment_id: Mapped[str] = mapped_column(
        Text, ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    evaluated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    window_start: Mapped[str | None] = mapped_column(Text, nullable=True)
    window_end: Mapped[str | None] = mapped_column(Text, nullable=True)
    metrics_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_log_evaluations_experiment", "experiment_id", "evaluated_at"),)


class KivItemRow(Base):
    __tablename__ = "log_product_kiv_items"

    kiv_id: Mapped[str] = mapped_column(Text, primary_key=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    asin_norm: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="open")
    title: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(Text, nullable=False, default="manual")
    source_experiment_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    resolved_at: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'done', 'dismissed')", name="ck_log_product_kiv_items_status"
        ),
        Index("idx_log_product_kiv_items_asin", "account_id", "marketplace", "asin_norm"),
    )


class DriverCampaignIntentRow(Base):
    __tablename__ = "log_driver_campaign_intents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    asin_norm: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    campaign_id: Mapped[str] = mapped_column(Text, nullable=False)
    intent: Mapped[str] = mapped_column(Text, nullable=False)
    is_driver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    constraints_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False, default=_utcnow_str)

    __table_args__ = (
        CheckConstraint("channel IN ('sp', 'sb', 'sd')", name="ck_log_driver_intents_channel"),
        UniqueConstraint(
            "account_id",
            "marketplace",
            "asin_norm",
            "channel",
            "campaign_id",
            name="uq_log_driver_intents_campaign",
        ),
    )


# --- Lookup facts ---


class ProductRow(Base):
    __tablename__ = "products"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("account_id", "marketplace", "asin", name="uq_products_asin"),
    )


class AdEntityRow(Base):
    __tablename__ = "ad_entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[str] = mapped_column(Text, nullable=False)
    campaign_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    ad_group_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    asin_norm: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("channel IN ('SP', 'SB', 'SD')", name="ck_ad_entities_channel"),
        CheckConstraint(
            "entity_type IN ('campaign', 'ad_group', 'target', 'product_ad')",
            name="ck_ad_entities_type",
        ),
        UniqueConstraint(
            "account_id",
            "marketplace",
            "channel",
            "entity_type",
            "entity_id",
            name="uq_ad_entities_entity",
        ),
        Index("idx_ad_entities_lookup", "channel", "entity_type", "entity_id"),
        Index("idx_ad_entities_asin", "account_id", "marketplace", "asin_norm"),
    )


class AdPerformanceRow(Base):
    __tablename__ = "ad_performance_daily"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    grain: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[str] = mapped_column(Text, nullable=False)
    campaign_id: Mapped[str] = mapped_column(Text, nullable=False)
    campaign_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    ad_group_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    targeting: Mapped[str | None] = mapped_column(Text, nullable=True)
    match_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    advertised_asin: Mapped[str | None] = mapped_column(Text, nullable=True)
    impressions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    spend: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    sales: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "grain IN ('campaign', 'target', 'advertised_product')",
            name="ck_ad_performance_daily_grain",
        ),
        Index(
            "idx_ad_performance_daily_window",
            "account_id",
            "marketplace",
            "channel",
            "grain",
            "date",
        ),
    )


class ProductSalesRow(Base):
    __tablename__ = "product_sales_daily"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(Text, nullable=False)
    marketplace: Mapped[str] = mapped_column(Text, nullable=False)
    asin: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[str] = mapped_column(Text, nullable=False)
    sales: Mapped[float | None] = mapped_column(Float, nullable=True)
    orders: Mapped[float | None] = mapped_column(Float, nullable=True)
    units: Mapped[float | None] = mapped_column(Float, nullable=True)
    sessions: Mapped[float | None] = mapped_column(Float, nullable=True)
    conversions: Mapped[float | None] = mapped_column(Float, nullable=True)
    ppc_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    tacos: Mapped[float | None] = mapped_column(Float, nullable=True)
    profits: Mapped[float | None] = mapped_column(Float, nullable=True)
    roi: Mapped[float | None] = mapped_column(Float, nullable=True)
    margin: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "account_id", "marketplace", "asin", "date", name="uq_product_sales_daily_day"
        ),
    )
