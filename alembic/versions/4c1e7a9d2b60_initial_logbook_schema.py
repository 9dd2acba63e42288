"""initial logbook schema

Revision ID: 4c1e7a9d2b60
Revises:
Create Date: 2026-10-18 09:12:41.208113

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c1e7a9d2b60"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the logbook and lookup-fact tables."""
    op.create_table(
        "log_experiments",
        sa.Column("experiment_id", sa.Text, primary_key=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("objective", sa.Text, nullable=False, server_default=""),
        sa.Column("hypothesis", sa.Text, nullable=True),
        sa.Column("evaluation_lag_days", sa.Integer, nullable=True),
        sa.Column("evaluation_window_days", sa.Integer, nullable=True),
        sa.Column("primary_metrics_json", sa.Text, nullable=True),
        sa.Column("guardrails_json", sa.Text, nullable=True),
        sa.Column("scope_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("scope_version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
    )
    op.create_index(
        "idx_log_experiments_account", "log_experiments", ["account_id", "marketplace"]
    )

    op.create_table(
        "log_changes",
        sa.Column("change_id", sa.Text, primary_key=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("occurred_at", sa.Text, nullable=False),
        sa.Column("channel", sa.Text, nullable=False),
        sa.Column("change_type", sa.Text, nullable=False),
        sa.Column("summary", sa.Text, nullable=False, server_default=""),
        sa.Column("why", sa.Text, nullable=True),
        sa.Column("source", sa.Text, nullable=False, server_default="manual"),
        sa.Column("before_json", sa.Text, nullable=True),
        sa.Column("after_json", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
    )
    op.create_index(
        "idx_log_changes_account_time",
        "log_changes",
        ["account_id", "marketplace", "occurred_at"],
    )

    op.create_table(
        "log_change_entities",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "change_id",
            sa.Text,
            sa.ForeignKey("log_changes.change_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("entity_type", sa.Text, nullable=False),
        sa.Column("product_id", sa.Text, nullable=True),
        sa.Column("campaign_id", sa.Text, nullable=True),
        sa.Column("ad_group_id", sa.Text, nullable=True),
        sa.Column("target_id", sa.Text, nullable=True),
        sa.Column("keyword_id", sa.Text, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
        sa.Column("extra_json", sa.Text, nullable=True),
    )
    op.create_index("idx_log_change_entities_change", "log_change_entities", ["change_id"])

    op.create_table(
        "log_experiment_changes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id",
            sa.Text,
            sa.ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "change_id",
            sa.Text,
            sa.ForeignKey("log_changes.change_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("run_id", sa.Text, nullable=True),
        sa.UniqueConstraint("change_id", name="uq_log_experiment_changes_change"),
    )
    op.create_index(
        "idx_log_experiment_changes_experiment", "log_experiment_changes", ["experiment_id"]
    )

    op.create_table(
        "log_change_validations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "change_id",
            sa.Text,
            sa.ForeignKey("log_changes.change_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("validated_snapshot_date", sa.Text, nullable=True),
        sa.Column("checked_at", sa.Text, nullable=False),
    )
    op.create_index(
        "idx_log_change_validations_change",
        "log_change_validations",
        ["change_id", "checked_at"],
    )

    op.create_table(
        "log_experiment_phases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id",
            sa.Text,
            sa.ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("run_id", sa.Text, nullable=False),
        sa.Column("effective_date", sa.Text, nullable=True),
        sa.Column("uploaded_at", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.UniqueConstraint("experiment_id", "run_id", name="uq_log_experiment_phases_run"),
    )

    op.create_table(
        "log_experiment_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "experiment_id",
            sa.Text,
            sa.ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "phase_id",
            sa.Integer,
            sa.ForeignKey("log_experiment_phases.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("run_id", sa.Text, nullable=True),
        sa.Column("event_type", sa.Text, nullable=False),
        sa.Column("event_date", sa.Text, nullable=False),
        sa.Column("occurred_at", sa.Text, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("payload_json", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.CheckConstraint(
            "event_type IN ('guardrail_breach', 'manual_intervention', 'stop_loss', "
            "'rollback', 'uploaded_to_amazon')",
            name="ck_log_experiment_events_type",
        ),
    )
    op.create_index(
        "idx_log_experiment_events_experiment",
        "log_experiment_events",
        ["experiment_id", "occurred_at"],
    )

    op.create_table(
        "log_evaluations",
        sa.Column("evaluation_id", sa.Text, primary_key=True),
        sa.Column(
            "experiment_id",
            sa.Text,
            sa.ForeignKey("log_experiments.experiment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("evaluated_at", sa.Text, nullable=False),
        sa.Column("window_start", sa.Text, nullable=True),
        sa.Column("window_end", sa.Text, nullable=True),
        sa.Column("metrics_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("notes", sa.Text, nullable=True),
    )
    op.create_index(
        "idx_log_evaluations_experiment", "log_evaluations", ["experiment_id", "evaluated_at"]
    )

    op.create_table(
        "log_product_kiv_items",
        sa.Column("kiv_id", sa.Text, primary_key=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("asin_norm", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="open"),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("details", sa.Text, nullable=True),
        sa.Column("source", sa.Text, nullable=False, server_default="manual"),
        sa.Column("source_experiment_id", sa.Text, nullable=True),
        sa.Column("tags_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("priority", sa.Integer, nullable=True),
        sa.Column("due_date", sa.Text, nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("resolved_at", sa.Text, nullable=True),
        sa.CheckConstraint(
            "status IN ('open', 'done', 'dismissed')", name="ck_log_product_kiv_items_status"
        ),
    )
    op.create_index(
        "idx_log_product_kiv_items_asin",
        "log_product_kiv_items",
        ["account_id", "marketplace", "asin_norm"],
    )

    op.create_table(
        "log_driver_campaign_intents",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("asin_norm", sa.Text, nullable=False),
        sa.Column("channel", sa.Text, nullable=False),
        sa.Column("campaign_id", sa.Text, nullable=False),
        sa.Column("intent", sa.Text, nullable=False),
        sa.Column("is_driver", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("constraints_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.Text, nullable=False),
        sa.Column("updated_at", sa.Text, nullable=False),
        sa.CheckConstraint("channel IN ('sp', 'sb', 'sd')", name="ck_log_driver_intents_channel"),
        sa.UniqueConstraint(
            "account_id",
            "marketplace",
            "asin_norm",
            "channel",
            "campaign_id",
            name="uq_log_driver_intents_campaign",
        ),
    )

    op.create_table(
        "products",
        sa.Column("product_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("asin", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=True),
        sa.UniqueConstraint("account_id", "marketplace", "asin", name="uq_products_asin"),
    )

    op.create_table(
        "ad_entities",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("channel", sa.Text, nullable=False),
        sa.Column("entity_type", sa.Text, nullable=False),
        sa.Column("entity_id", sa.Text, nullable=False),
        sa.Column("campaign_id", sa.Text, nullable=True),
        sa.Column("ad_group_id", sa.Text, nullable=True),
        sa.Column("asin_norm", sa.Text, nullable=True),
        sa.Column("name", sa.Text, nullable=True),
        sa.CheckConstraint("channel IN ('SP', 'SB', 'SD')", name="ck_ad_entities_channel"),
        sa.CheckConstraint(
            "entity_type IN ('campaign', 'ad_group', 'target', 'product_ad')",
            name="ck_ad_entities_type",
        ),
        sa.UniqueConstraint(
            "account_id",
            "marketplace",
            "channel",
            "entity_type",
            "entity_id",
            name="uq_ad_entities_entity",
        ),
    )
    op.create_index(
        "idx_ad_entities_lookup", "ad_entities", ["channel", "entity_type", "entity_id"]
    )
    op.create_index(
        "idx_ad_entities_asin", "ad_entities", ["account_id", "marketplace", "asin_norm"]
    )

    op.create_table(
        "ad_performance_daily",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("channel", sa.Text, nullable=False),
        sa.Column("grain", sa.Text, nullable=False),
        sa.Column("date", sa.Text, nullable=False),
        sa.Column("campaign_id", sa.Text, nullable=False),
        sa.Column("campaign_name", sa.Text, nullable=True),
        sa.Column("ad_group_id", sa.Text, nullable=True),
        sa.Column("target_id", sa.Text, nullable=True),
        sa.Column("targeting", sa.Text, nullable=True),
        sa.Column("match_type", sa.Text, nullable=True),
        sa.Column("advertised_asin", sa.Text, nullable=True),
        sa.Column("impressions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer, nullable=False, server_default="0"),
        sa.Column("spend", sa.Float, nullable=False, server_default="0"),
        sa.Column("sales", sa.Float, nullable=False, server_default="0"),
        sa.Column("orders", sa.Integer, nullable=False, server_default="0"),
        sa.Column("units", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint(
            "grain IN ('campaign', 'target', 'advertised_product')",
            name="ck_ad_performance_daily_grain",
        ),
    )
    op.create_index(
        "idx_ad_performance_daily_window",
        "ad_performance_daily",
        ["account_id", "marketplace", "channel", "grain", "date"],
    )

    op.create_table(
        "product_sales_daily",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Text, nullable=False),
        sa.Column("marketplace", sa.Text, nullable=False),
        sa.Column("asin", sa.Text, nullable=False),
        sa.Column("date", sa.Text, nullable=False),
        sa.Column("sales", sa.Float, nullable=True),
        sa.Column("orders", sa.Float, nullable=True),
        sa.Column("units", sa.Float, nullable=True),
        sa.Column("sessions", sa.Float, nullable=True),
        sa.Column("conversions", sa.Float, nullable=True),
        sa.Column("ppc_cost", sa.Float, nullable=True),
        sa.Column("tacos", sa.Float, nullable=True),
        sa.Column("profits", sa.Float, nullable=True),
        sa.Column("roi", sa.Float, nullable=True),
        sa.Column("margin", sa.Float, nullable=True),
        sa.UniqueConstraint(
            "account_id", "marketplace", "asin", "date", name="uq_product_sales_daily_day"
        ),
    )


def downgrade() -> None:
    """Drop all adsbook tables, dependents first."""
    op.drop_table("product_sales_daily")
    op.drop_table("ad_performance_daily")
    op.drop_table("ad_entities")
    op.drop_table("products")
    op.drop_table("log_driver_campaign_intents")
    op.drop_table("log_product_kiv_items")
    op.drop_table("log_evaluations")
    op.drop_table("log_experiment_events")
    op.drop_table("log_experiment_phases")
    op.drop_table("log_change_validations")
    op.drop_table("log_experiment_changes")
    op.drop_table("log_change_entities")
    op.drop_table("log_changes")
    op.drop_table("log_experiments")
