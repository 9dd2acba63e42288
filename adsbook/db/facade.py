"""SQLAlchemy-backed record store: logbook CRUD plus the read-only lookup facts."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypedDict

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from adsbook.db.engine import create_db_engine, create_session_factory
from adsbook.db.orm import (
    AdEntityRow,
    AdPerformanceRow,
    Base,
    ChangeEntityRow,
    ChangeRow,
    ChangeValidationRow,
    DriverCampaignIntentRow,
    EvaluationRow,
    ExperimentChangeRow,
    ExperimentEventRow,
    ExperimentPhaseRow,
    ExperimentRow,
    KivItemRow,
    ProductRow,
    ProductSalesRow,
)
from adsbook.errors import ExperimentNotFoundError, KivItemNotFoundError, ScopeConflictError
from adsbook.models.experiment import Experiment

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker

    from adsbook.context import AccountContext


def _utcnow_str() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def _loads(raw: str | None, default: Any = None) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def _norm_asin(asin: str) -> str:
    return asin.strip().upper()


class ChangeEntityDict(TypedDict):
    entity_type: str
    product_id: str | None
    campaign_id: str | None
    ad_group_id: str | None
    target_id: str | None
    keyword_id: str | None
    note: str | None
    extra: dict[str, Any] | None


class ChangeDict(TypedDict):
    change_id: str
    account_id: str
    marketplace: str
    occurred_at: str
    channel: str
    change_type: str
    summary: str
    why: str | None
    source: str
    before: Any
    after: Any
    run_id: str | None
    validated_snapshot_date: str | None
    entities: list[ChangeEntityDict]


class PhaseDict(TypedDict):
    id: int
    experiment_id: str
    run_id: str
    effective_date: str | None
    uploaded_at: str | None
    created_at: str


class EventDict(TypedDict):
    id: int
    experiment_id: str
    phase_id: int | None
    run_id: str | None
    event_type: str
    event_date: str
    occurred_at: str
    notes: str | None
    payload: Any
    created_at: str


class EvaluationDict(TypedDict):
    evaluation_id: str
    experiment_id: str
    evaluated_at: str
    window_start: str | None
    window_end: str | None
    metrics: dict[str, Any]
    notes: str | None


class KivItemDict(TypedDict):
    kiv_id: str
    account_id: str
    marketplace: str
    asin_norm: str
    status: str
    title: str
    details: str | None
    source: str
    source_experiment_id: str | None
    tags: list[str]
    priority: int | None
    due_date: str | None
    resolution_notes: str | None
    created_at: str
    resolved_at: str | None


class DriverIntentDict(TypedDict):
    id: int
    asin_norm: str
    channel: str
    campaign_id: str
    intent: str
    is_driver: bool
    notes: str | None
    constraints: dict[str, Any]
    created_at: str
    updated_at: str


class ProductDict(TypedDict):
    product_id: int
    account_id: str
    marketplace: str
    asin: str
    title: str | None


class AdEntityDict(TypedDict):
    account_id: str
    marketplace: str
    channel: str
    entity_type: str
    entity_id: str
    campaign_id: str | None
    ad_group_id: str | None
    asin_norm: str | None
    name: str | None


class PerformanceRowDict(TypedDict):
    channel: str
    grain: str
    date: str
    campaign_id: str
    campaign_name: str | None
    ad_group_id: str | None
    target_id: str | None
    targeting: str | None
    match_type: str | None
    advertised_asin: str | None
    impressions: int
    clicks: int
    spend: float
    sales: float
    orders: int
    units: int


class SalesRowDict(TypedDict):
    date: str
    sales: float | None
    orders: float | None
    units: float | None
    sessions: float | None
    conversions: float | None
    ppc_cost: float | None
    tacos: float | None
    profits: float | None
    roi: float | None
    margin: float | None


SALES_FIELDS = (
    "sales",
    "orders",
    "units",
    "sessions",
    "conversions",
    "ppc_cost",
    "tacos",
    "profits",
    "roi",
    "margin",
)

KIV_CLOSED_STATUSES = frozenset({"done", "dismissed"})


class Database:
    """Record store for experiments, changes, evaluations, KIV items and ad facts.

    Every read and write is scoped by an explicit :class:`AccountContext`,
    except the cross-account entity lookups used to tell "not found" apart
    from "belongs to another account".
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = str(db_path)
        self._engine: Engine = create_db_engine(self.db_path)
        self._session_factory: sessionmaker[Session] = create_session_factory(self._engine)

    @property
    def engine(self) -> Engine:
        """Expose the SQLAlchemy engine for inspection and advanced use."""
        return self._engine

    def init_schema(self) -> None:
        """Create all tables via ORM metadata."""
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def check_connection(self) -> bool:
        """Verify the database is reachable. Returns True or raises."""
        with self._session_factory() as session:
            session.execute(text("SELECT 1"))
        return True

    # --- Experiments ---

    def create_experiment(
        self,
        ctx: AccountContext,
        *,
        name: str,
        objective: str = "",
        hypothesis: str | None = None,
        evaluation_lag_days: int | None = None,
        evaluation_window_days: int | None = None,
        primary_metrics: Any = None,
        guardrails: Any = None,
        scope: dict[str, Any] | None = None,
        experiment_id: str | None = None,
    ) -> Experiment:
        with self._session_factory() as session:
            row = ExperimentRow(
                experiment_id=experiment_id or str(uuid.uuid4()),
                account_id=ctx.account_id,
                marketplace=ctx.marketplace,
                name=name,
                objective=objective,
                hypothesis=hypothesis,
                evaluation_lag_days=evaluation_lag_days,
                evaluation_window_days=evaluation_window_days,
                primary_metrics_json=None if primary_metrics is None else _dumps(primary_metrics),
                guardrails_json=None if guardrails is None else _dumps(guardrails),
                scope_json=_dumps(scope or {}),
                scope_version=1,
            )
            session.add(row)
            session.commit()
            return self._row_to_experiment(row)

    def get_experiment(self, ctx: AccountContext, experiment_id: str) -> Experiment | None:
        with self._session_factory() as session:
            row = session.get(ExperimentRow, experiment_id)
            if row is None or not ctx.matches(row.account_id, row.marketplace):
                return None
            return self._row_to_experiment(row)

    def require_experiment(self, ctx: AccountContext, experiment_id: str) -> Experiment:
        experiment = self.get_experiment(ctx, experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment

    def list_experiments(self, ctx: AccountContext, status: str | None = None) -> list[Experiment]:
        with self._session_factory() as session:
            stmt = (
                select(ExperimentRow)
                .where(
                    ExperimentRow.account_id == ctx.account_id,
                    ExperimentRow.marketplace == ctx.marketplace,
                )
                .order_by(ExperimentRow.created_at.desc())
            )
            experiments = [self._row_to_experiment(r) for r in session.scalars(stmt).all()]
        if status:
            experiments = [e for e in experiments if e.status.lower() == status.lower()]
        return experiments

    def update_experiment_scope(
        self,
        ctx: AccountContext,
        experiment_id: str,
        scope: dict[str, Any],
        expected_version: int,
    ) -> Experiment:
        """Compare-and-set write of the scope document.

        Raises ScopeConflictError when another writer bumped ``scope_version``
        since the caller read it.
        """
        with self._session_factory() as session:
            self._compare_and_set_scope(session, ctx, experiment_id, scope, expected_version)
            session.commit()
            row = session.get(ExperimentRow, experiment_id)
            assert row is not None
            return self._row_to_experiment(row)

    @staticmethod
    def _compare_and_set_scope(
        session: Session,
        ctx: AccountContext,
        experiment_id: str,
        scope: dict[str, Any],
        expected_version: int,
    ) -> None:
        """Stage the versioned scope write; roll the session back and raise on a lost race."""
        result = session.execute(
            update(ExperimentRow)
            .where(
                ExperimentRow.experiment_id == experiment_id,
                ExperimentRow.account_id == ctx.account_id,
                ExperimentRow.marketplace == ctx.marketplace,
                ExperimentRow.scope_version == expected_version,
            )
            .values(
                scope_json=_dumps(scope),
                scope_version=expected_version + 1,
                updated_at=_utcnow_str(),
            )
        )
        if result.rowcount == 0:
            session.rollback()
            row = session.get(ExperimentRow, experiment_id)
            if row is None or not ctx.matches(row.account_id, row.marketplace):
                raise ExperimentNotFoundError(experiment_id)
            raise ScopeConflictError(experiment_id, expected_version)

    # --- Changes ---

    def create_change(
        self,
        ctx: AccountContext,
        *,
        channel: str,
        change_type: str,
        summary: str,
        occurred_at: str | None = None,
        why: str | None = None,
        source: str = "manual",
        before: Any = None,
        after: Any = None,
        entities: Iterable[dict[str, Any]] = (),
        change_id: str | None = None,
    ) -> str:
        with self._session_factory() as session:
            row = ChangeRow(
                change_id=change_id or str(uuid.uuid4()),
                account_id=ctx.account_id,
                marketplace=ctx.marketplace,
                occurred_at=occurred_at or _utcnow_str(),
                channel=channel,
                change_type=change_type,
                summary=summary,
                why=why,
                source=source,
                before_json=None if before is None else _dumps(before),
                after_json=None if after is None else _dumps(after),
            )
            session.add(row)
            session.flush()
            for entity in entities:
                extra = entity.get("extra")
                session.add(
                    ChangeEntityRow(
                        change_id=row.change_id,
                        entity_type=str(entity.get("entity_type") or "generic"),
                        product_id=entity.get("product_id"),
                        campaign_id=entity.get("campaign_id"),
                        ad_group_id=entity.get("ad_group_id"),
                        target_id=entity.get("target_id"),
                        keyword_id=entity.get("keyword_id"),
                        note=entity.get("note"),
                        extra_json=None if extra is None else _dumps(extra),
                    )
                )
            session.commit()
            return row.change_id

    def link_changes(
        self, experiment_id: str, change_ids: Iterable[str], *, run_id: str | None = None
    ) -> int:
        """Link changes to an experiment; already-linked changes are left as they are."""
        linked = 0
        with self._session_factory() as session:
            for change_id in change_ids:
                stmt = (
                    sqlite_insert(ExperimentChangeRow)
                    .values(experiment_id=experiment_id, change_id=change_id, run_id=run_id)
                    .on_conflict_do_nothing(index_elements=["change_id"])
                )
                linked += session.execute(stmt).rowcount or 0
            session.commit()
        return linked

    def add_change_validation(
        self,
        change_id: str,
        status: str,
        validated_snapshot_date: str | None = None,
        checked_at: str | None = None,
    ) -> None:
        with self._session_factory() as session:
            session.add(
                ChangeValidationRow(
                    change_id=change_id,
                    status=status,
                    validated_snapshot_date=validated_snapshot_date,
                    checked_at=checked_at or _utcnow_str(),
                )
            )
            session.commit()

    def list_experiment_changes(self, ctx: AccountContext, experiment_id: str) -> list[ChangeDict]:
        """Changes linked to the experiment, each with its latest validation snapshot date."""
        with self._session_factory() as session:
            stmt = (
                select(ChangeRow, ExperimentChangeRow.run_id)
                .join(ExperimentChangeRow, ExperimentChangeRow.change_id == ChangeRow.change_id)
                .where(
                    ExperimentChangeRow.experiment_id == experiment_id,
                    ChangeRow.account_id == ctx.account_id,
                    ChangeRow.marketplace == ctx.marketplace,
                )
                .order_by(ChangeRow.occurred_at.desc(), ChangeRow.change_id.desc())
            )
            results = session.execute(stmt).all()
            rows = [r for r, _ in results]
            run_ids = {r.change_id: run_id for r, run_id in results}
            change_ids = [r.change_id for r in rows]
            if not change_ids:
                return []

            latest: dict[str, tuple[str, str | None]] = {}
            validations = session.scalars(
                select(ChangeValidationRow).where(ChangeValidationRow.change_id.in_(change_ids))
            ).all()
            for v in validations:
                current = latest.get(v.change_id)
                if current is None or v.checked_at > current[0]:
                    latest[v.change_id] = (v.checked_at, v.validated_snapshot_date)

            entities: dict[str, list[ChangeEntityDict]] = {cid: [] for cid in change_ids}
            entity_rows = session.scalars(
                select(ChangeEntityRow)
                .where(ChangeEntityRow.change_id.in_(change_ids))
                .order_by(ChangeEntityRow.id)
            ).all()
            for e in entity_rows:
                entities[e.change_id].append(
                    ChangeEntityDict(
                        entity_type=e.entity_type,
                        product_id=e.product_id,
                        campaign_id=e.campaign_id,
                        ad_group_id=e.ad_group_id,
                        target_id=e.target_id,
                        keyword_id=e.keyword_id,
                        note=e.note,
                        extra=_loads(e.extra_json),
                    )
                )

            return [
                ChangeDict(
                    change_id=r.change_id,
                    account_id=r.account_id,
                    marketplace=r.marketplace,
                    occurred_at=r.occurred_at,
                    channel=r.channel,
                    change_type=r.change_type,
                    summary=r.summary,
                    why=r.why,
                    source=r.source,
                    before=_loads(r.before_json),
                    after=_loads(r.after_json),
                    validated_snapshot_date=latest.get(r.change_id, ("", None))[1],
                    run_id=run_ids.get(r.change_id),
                    entities=entities[r.change_id],
                )
                for r in rows
            ]

    # --- Phases and events ---

    def get_phase(self, experiment_id: str, run_id: str) -> PhaseDict | None:
        with self._session_factory() as session:
            row = session.scalars(
                select(ExperimentPhaseRow).where(
                    ExperimentPhaseRow.experiment_id == experiment_id,
                    ExperimentPhaseRow.run_id == run_id,
                )
            ).first()
            return None if row is None else self._row_to_phase(row)

    def upsert_phase(
        self,
        experiment_id: str,
        run_id: str,
        *,
        effective_date: str | None = None,
        uploaded_at: str | None = None,
    ) -> PhaseDict:
        with self._session_factory() as session:
            row = session.scalars(
                select(ExperimentPhaseRow).where(
                    ExperimentPhaseRow.experiment_id == experiment_id,
                    ExperimentPhaseRow.run_id == run_id,
                )
            ).first()
            if row is None:
                row = ExperimentPhaseRow(experiment_id=experiment_id, run_id=run_id)
                session.add(row)
            if effective_date is not None:
                row.effective_date = effective_date
            if uploaded_at is not None:
                row.uploaded_at = uploaded_at
            session.commit()
            return self._row_to_phase(row)

    def add_event(
        self,
        experiment_id: str,
        *,
        event_type: str,
        event_date: str,
        occurred_at: str,
        run_id: str | None = None,
        phase_id: int | None = None,
        notes: str | None = None,
        payload: Any = None,
    ) -> EventDict:
        with self._session_factory() as session:
            row = ExperimentEventRow(
                experiment_id=experiment_id,
                phase_id=phase_id,
                run_id=run_id,
                event_type=event_type,
                event_date=event_date,
                occurred_at=occurred_at,
                notes=notes,
                payload_json=None if payload is None else _dumps(payload),
            )
            session.add(row)
            session.commit()
            return self._row_to_event(row)

    def list_events(self, experiment_id: str) -> list[EventDict]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ExperimentEventRow)
                .where(ExperimentEventRow.experiment_id == experiment_id)
                .order_by(ExperimentEventRow.occurred_at.desc(), ExperimentEventRow.id.desc())
            ).all()
            return [self._row_to_event(r) for r in rows]

    # --- Evaluations ---

    def insert_evaluation(
        self,
        ctx: AccountContext,
        experiment_id: str,
        *,
        window_start: str | None,
        window_end: str | None,
        metrics: dict[str, Any],
        notes: str | None = None,
        scope: dict[str, Any] | None = None,
        expected_version: int | None = None,
    ) -> str:
        """Store an evaluation, optionally with a compare-and-set scope write.

        When ``scope`` is given both writes share one transaction, so a lost
        scope race (ScopeConflictError) leaves no evaluation row behind.
        """
        with self._session_factory() as session:
            if scope is not None:
                if expected_version is None:
                    raise ValueError("expected_version is required with scope")
                self._compare_and_set_scope(session, ctx, experiment_id, scope, expected_version)
            row = EvaluationRow(
                evaluation_id=str(uuid.uuid4()),
                experiment_id=experiment_id,
                account_id=ctx.account_id,
                marketplace=ctx.marketplace,
                window_start=window_start,
                window_end=window_end,
                metrics_json=_dumps(metrics),
                notes=notes,
            )
            session.add(row)
            session.commit()
            return row.evaluation_id

    def list_evaluations(self, experiment_id: str) -> list[EvaluationDict]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(EvaluationRow)
                .where(EvaluationRow.experiment_id == experiment_id)
                .order_by(EvaluationRow.evaluated_at.desc())
            ).all()
            return [
                EvaluationDict(
                    evaluation_id=r.evaluation_id,
                    experiment_id=r.experiment_id,
                    evaluated_at=r.evaluated_at,
                    window_start=r.window_start,
                    window_end=r.window_end,
                    metrics=_loads(r.metrics_json, {}),
                    notes=r.notes,
                )
                for r in rows
            ]

    # --- KIV items ---

    def list_kiv_items(self, ctx: AccountContext, asin: str) -> list[KivItemDict]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(KivItemRow)
                .where(
                    KivItemRow.account_id == ctx.account_id,
                    KivItemRow.marketplace == ctx.marketplace,
                    KivItemRow.asin_norm == _norm_asin(asin),
                )
                .order_by(KivItemRow.created_at.desc())
            ).all()
            return [self._row_to_kiv(r) for r in rows]

    def get_kiv_items_by_ids(self, ctx: AccountContext, kiv_ids: Iterable[str]) -> list[KivItemDict]:
        ids = list(dict.fromkeys(kiv_ids))
        if not ids:
            return []
        with self._session_factory() as session:
            rows = session.scalars(
                select(KivItemRow).where(
                    KivItemRow.account_id == ctx.account_id,
                    KivItemRow.marketplace == ctx.marketplace,
                    KivItemRow.kiv_id.in_(ids),
                )
            ).all()
            return [self._row_to_kiv(r) for r in rows]

    def create_kiv_item(
        self,
        ctx: AccountContext,
        asin: str,
        *,
        title: str,
        details: str | None = None,
        tags: list[str] | None = None,
        priority: int | None = None,
        due_date: str | None = None,
        source: str = "manual",
        source_experiment_id: str | None = None,
        status: str = "open",
        resolution_notes: str | None = None,
    ) -> KivItemDict:
        with self._session_factory() as session:
            row = KivItemRow(
                kiv_id=str(uuid.uuid4()),
                account_id=ctx.account_id,
                marketplace=ctx.marketplace,
                asin_norm=_norm_asin(asin),
                status=status,
                title=title,
                details=details,
                source=source,
                source_experiment_id=source_experiment_id,
                tags_json=_dumps(tags or []),
                priority=priority,
                due_date=due_date,
                resolution_notes=resolution_notes,
                resolved_at=_utcnow_str() if status in KIV_CLOSED_STATUSES else None,
            )
            session.add(row)
            session.commit()
            return self._row_to_kiv(row)

    def update_kiv_item(
        self,
        ctx: AccountContext,
        kiv_id: str,
        *,
        status: str | None = None,
        resolution_notes: str | None = None,
        title: str | None = None,
        details: str | None = None,
        tags: list[str] | None = None,
        priority: int | None = None,
        due_date: str | None = None,
    ) -> KivItemDict:
        """Partial update; moving to done/dismissed stamps ``resolved_at``, reopening clears it."""
        with self._session_factory() as session:
            row = session.get(KivItemRow, kiv_id)
            if row is None or not ctx.matches(row.account_id, row.marketplace):
                raise KivItemNotFoundError(kiv_id)
            if status is not None and status != row.status:
                row.status = status
                row.resolved_at = _utcnow_str() if status in KIV_CLOSED_STATUSES else None
            if resolution_notes is not None:
                row.resolution_notes = resolution_notes
            if title is not None:
                row.title = title
            if details is not None:
                row.details = details
            if tags is not None:
                row.tags_json = _dumps(tags)
            if priority is not None:
                row.priority = priority
            if due_date is not None:
                row.due_date = due_date
            session.commit()
            return self._row_to_kiv(row)

    # --- Driver campaign intents ---

    def list_driver_intents(self, ctx: AccountContext, asin: str) -> list[DriverIntentDict]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(DriverCampaignIntentRow)
                .where(
                    DriverCampaignIntentRow.account_id == ctx.account_id,
                    DriverCampaignIntentRow.marketplace == ctx.marketplace,
                    DriverCampaignIntentRow.asin_norm == _norm_asin(asin),
                )
                .order_by(DriverCampaignIntentRow.channel, DriverCampaignIntentRow.campaign_id)
            ).all()
            return [self._row_to_intent(r) for r in rows]

    def upsert_driver_intent(
        self,
        ctx: AccountContext,
        asin: str,
        *,
        channel: str,
        campaign_id: str,
        intent: str,
        is_driver: bool = True,
        notes: str | None = None,
        constraints: dict[str, Any] | None = None,
    ) -> DriverIntentDict:
        channel = channel.strip().lower()
        with self._session_factory() as session:
            row = session.scalars(
                select(DriverCampaignIntentRow).where(
                    DriverCampaignIntentRow.account_id == ctx.account_id,
                    DriverCampaignIntentRow.marketplace == ctx.marketplace,
                    DriverCampaignIntentRow.asin_norm == _norm_asin(asin),
                    DriverCampaignIntentRow.channel == channel,
                    DriverCampaignIntentRow.campaign_id == campaign_id,
                )
            ).first()
            if row is None:
                row = DriverCampaignIntentRow(
                    account_id=ctx.account_id,
                    marketplace=ctx.marketplace,
                    asin_norm=_norm_asin(asin),
                    channel=channel,
                    campaign_id=campaign_id,
                )
                session.add(row)
            row.intent = intent
            row.is_driver = is_driver
            row.notes = notes
            row.constraints_json = _dumps(constraints or {})
            row.updated_at = _utcnow_str()
            session.commit()
            return self._row_to_intent(row)

    def delete_driver_intent(self, ctx: AccountContext, asin: str, intent_id: int) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                delete(DriverCampaignIntentRow).where(
                    DriverCampaignIntentRow.id == intent_id,
                    DriverCampaignIntentRow.account_id == ctx.account_id,
                    DriverCampaignIntentRow.marketplace == ctx.marketplace,
                    DriverCampaignIntentRow.asin_norm == _norm_asin(asin),
                )
            )
            session.commit()
            return bool(result.rowcount)

    # --- Products and ad entities ---

    def upsert_product(self, ctx: AccountContext, asin: str, title: str | None = None) -> ProductDict:
        with self._session_factory() as session:
            row = session.scalars(
                select(ProductRow).where(
                    ProductRow.account_id == ctx.account_id,
                    ProductRow.marketplace == ctx.marketplace,
                    ProductRow.asin == _norm_asin(asin),
                )
            ).first()
            if row is None:
                row = ProductRow(
                    account_id=ctx.account_id, marketplace=ctx.marketplace, asin=_norm_asin(asin)
                )
                session.add(row)
            if title is not None:
                row.title = title
            session.commit()
            return self._row_to_product(row)

    def get_product(self, ctx: AccountContext, asin: str) -> ProductDict | None:
        with self._session_factory() as session:
            row = session.scalars(
                select(ProductRow).where(
                    ProductRow.account_id == ctx.account_id,
                    ProductRow.marketplace == ctx.marketplace,
                    ProductRow.asin == _norm_asin(asin),
                )
            ).first()
            return None if row is None else self._row_to_product(row)

    def upsert_ad_entity(
        self,
        ctx: AccountContext,
        *,
        channel: str,
        entity_type: str,
        entity_id: str,
        campaign_id: str | None = None,
        ad_group_id: str | None = None,
        asin: str | None = None,
        name: str | None = None,
    ) -> None:
        values = {
            "account_id": ctx.account_id,
            "marketplace": ctx.marketplace,
            "channel": channel.upper(),
            "entity_type": entity_type,
            "entity_id": entity_id,
            "campaign_id": campaign_id if entity_type != "campaign" else entity_id,
            "ad_group_id": ad_group_id,
            "asin_norm": _norm_asin(asin) if asin else None,
            "name": name,
        }
        stmt = sqlite_insert(AdEntityRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "marketplace", "channel", "entity_type", "entity_id"],
            set_={k: stmt.excluded[k] for k in ("campaign_id", "ad_group_id", "asin_norm", "name")},
        )
        with self._session_factory() as session:
            session.execute(stmt)
            session.commit()

    def find_entities(self, channel: str, entity_type: str, entity_id: str) -> list[AdEntityDict]:
        """Look an entity up by id across every account and marketplace."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(AdEntityRow).where(
                    AdEntityRow.channel == channel.upper(),
                    AdEntityRow.entity_type == entity_type,
                    AdEntityRow.entity_id == entity_id,
                )
            ).all()
            return [
                AdEntityDict(
                    account_id=r.account_id,
                    marketplace=r.marketplace,
                    channel=r.channel,
                    entity_type=r.entity_type,
                    entity_id=r.entity_id,
                    campaign_id=r.campaign_id,
                    ad_group_id=r.ad_group_id,
                    asin_norm=r.asin_norm,
                    name=r.name,
                )
                for r in rows
            ]

    def campaign_ids_for_asin(self, ctx: AccountContext, channel: str, asin: str) -> list[str]:
        """Campaigns that advertise the ASIN (via their product ads)."""
        with self._session_factory() as session:
            rows = session.execute(
                select(AdEntityRow.campaign_id)
                .where(
                    AdEntityRow.account_id == ctx.account_id,
                    AdEntityRow.marketplace == ctx.marketplace,
                    AdEntityRow.channel == channel.upper(),
                    AdEntityRow.entity_type == "product_ad",
                    AdEntityRow.asin_norm == _norm_asin(asin),
                    AdEntityRow.campaign_id.is_not(None),
                )
                .distinct()
                .order_by(AdEntityRow.campaign_id)
            ).all()
            return [r[0] for r in rows]

    # --- Performance and sales facts ---

    def add_performance_rows(self, ctx: AccountContext, rows: Iterable[dict[str, Any]]) -> int:
        count = 0
        with self._session_factory() as session:
            for raw in rows:
                session.add(
                    AdPerformanceRow(
                        account_id=ctx.account_id,
                        marketplace=ctx.marketplace,
                        channel=str(raw["channel"]).upper(),
                        grain=raw["grain"],
                        date=raw["date"],
                        campaign_id=str(raw["campaign_id"]),
                        campaign_name=raw.get("campaign_name"),
                        ad_group_id=raw.get("ad_group_id"),
                        target_id=raw.get("target_id"),
                        targeting=raw.get("targeting"),
                        match_type=raw.get("match_type"),
                        advertised_asin=(
                            _norm_asin(raw["advertised_asin"]) if raw.get("advertised_asin") else None
                        ),
                        impressions=int(raw.get("impressions") or 0),
                        clicks=int(raw.get("clicks") or 0),
                        spend=float(raw.get("spend") or 0),
                        sales=float(raw.get("sales") or 0),
                        orders=int(raw.get("orders") or 0),
                        units=int(raw.get("units") or 0),
                    )
                )
                count += 1
            session.commit()
        return count

    def add_sales_rows(self, ctx: AccountContext, asin: str, rows: Iterable[dict[str, Any]]) -> int:
        count = 0
        with self._session_factory() as session:
            for raw in rows:
                values = {f: raw.get(f) for f in SALES_FIELDS}
                stmt = sqlite_insert(ProductSalesRow).values(
                    account_id=ctx.account_id,
                    marketplace=ctx.marketplace,
                    asin=_norm_asin(asin),
                    date=raw["date"],
                    **values,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["account_id", "marketplace", "asin", "date"],
                    set_={f: stmt.excluded[f] for f in SALES_FIELDS},
                )
                session.execute(stmt)
                count += 1
            session.commit()
        return count

    def performance_rows(
        self,
        ctx: AccountContext,
        *,
        channel: str,
        grain: str,
        start: str,
        end: str,
        campaign_ids: list[str] | None = None,
        advertised_asin: str | None = None,
    ) -> list[PerformanceRowDict]:
        stmt = select(AdPerformanceRow).where(
            AdPerformanceRow.account_id == ctx.account_id,
            AdPerformanceRow.marketplace == ctx.marketplace,
            AdPerformanceRow.channel == channel.upper(),
            AdPerformanceRow.grain == grain,
            AdPerformanceRow.date >= start,
            AdPerformanceRow.date <= end,
        )
        if campaign_ids is not None:
            stmt = stmt.where(AdPerformanceRow.campaign_id.in_(campaign_ids))
        if advertised_asin is not None:
            stmt = stmt.where(AdPerformanceRow.advertised_asin == _norm_asin(advertised_asin))
        stmt = stmt.order_by(AdPerformanceRow.date, AdPerformanceRow.id)
        with self._session_factory() as session:
            return [
                PerformanceRowDict(
                    channel=r.channel,
                    grain=r.grain,
                    date=r.date,
                    campaign_id=r.campaign_id,
                    campaign_name=r.campaign_name,
                    ad_group_id=r.ad_group_id,
                    target_id=r.target_id,
                    targeting=r.targeting,
                    match_type=r.match_type,
                    advertised_asin=r.advertised_asin,
                    impressions=r.impressions,
                    clicks=r.clicks,
                    spend=r.spend,
                    sales=r.sales,
                    orders=r.orders,
                    units=r.units,
                )
                for r in session.scalars(stmt).all()
            ]

    def product_sales_rows(
        self, ctx: AccountContext, asin: str, start: str, end: str
    ) -> list[SalesRowDict]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ProductSalesRow)
                .where(
                    ProductSalesRow.account_id == ctx.account_id,
                    ProductSalesRow.marketplace == ctx.marketplace,
                    ProductSalesRow.asin == _norm_asin(asin),
                    ProductSalesRow.date >= start,
                    ProductSalesRow.date <= end,
                )
                .order_by(ProductSalesRow.date)
            ).all()
            return [
                SalesRowDict(date=r.date, **{f: getattr(r, f) for f in SALES_FIELDS})  # type: ignore[typeddict-item]
                for r in rows
            ]

    def count_rows(self, table: type[Base]) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(table)) or 0

    # --- Row converters ---

    @staticmethod
    def _row_to_experiment(row: ExperimentRow) -> Experiment:
        return Experiment(
            experiment_id=row.experiment_id,
            account_id=row.account_id,
            marketplace=row.marketplace,
            name=row.name,
            objective=row.objective,
            hypothesis=row.hypothesis,
            evaluation_lag_days=row.evaluation_lag_days,
            evaluation_window_days=row.evaluation_window_days,
            primary_metrics=_loads(row.primary_metrics_json),
            guardrails=_loads(row.guardrails_json),
            scope=_loads(row.scope_json, {}) or {},
            scope_version=row.scope_version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _row_to_phase(row: ExperimentPhaseRow) -> PhaseDict:
        return PhaseDict(
            id=row.id,
            experiment_id=row.experiment_id,
            run_id=row.run_id,
            effective_date=row.effective_date,
            uploaded_at=row.uploaded_at,
            created_at=row.created_at,
        )

    @staticmethod
    def _row_to_event(row: ExperimentEventRow) -> EventDict:
        return EventDict(
            id=row.id,
            experiment_id=row.experiment_id,
            phase_id=row.phase_id,
            run_id=row.run_id,
            event_type=row.event_type,
            event_date=row.event_date,
            occurred_at=row.occurred_at,
            notes=row.notes,
            payload=_loads(row.payload_json),
            created_at=row.created_at,
        )

    @staticmethod
    def _row_to_kiv(row: KivItemRow) -> KivItemDict:
        return KivItemDict(
            kiv_id=row.kiv_id,
            account_id=row.account_id,
            marketplace=row.marketplace,
            asin_norm=row.asin_norm,
            status=row.status,
            title=row.title,
            details=row.details,
            source=row.source,
            source_experiment_id=row.source_experiment_id,
            tags=_loads(row.tags_json, []),
            priority=row.priority,
            due_date=row.due_date,
            resolution_notes=row.resolution_notes,
            created_at=row.created_at,
            resolved_at=row.resolved_at,
        )

    @staticmethod
    def _row_to_intent(row: DriverCampaignIntentRow) -> DriverIntentDict:
        return DriverIntentDict(
            id=row.id,
            asin_norm=row.asin_norm,
            channel=row.channel,
            campaign_id=row.campaign_id,
            intent=row.intent,
            is_driver=bool(row.is_driver),
            notes=row.notes,
            constraints=_loads(row.constraints_json, {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _row_to_product(row: ProductRow) -> ProductDict:
        return ProductDict(
            product_id=row.product_id,
            account_id=row.account_id,
            marketplace=row.marketplace,
            asin=row.asin,
            title=row.title,
        )


__all__ = [
    "AdEntityDict",
    "ChangeDict",
    "Database",
    "DriverIntentDict",
    "EvaluationDict",
    "EventDict",
    "KivItemDict",
    "PerformanceRowDict",
    "PhaseDict",
    "ProductDict",
    "SalesRowDict",
]
