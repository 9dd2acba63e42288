"""Click CLI entry point for adsbook."""

from __future__ import annotations

import json
import sys
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from adsbook.config import Settings
from adsbook.context import AccountContext
from adsbook.db import Database
from adsbook.errors import AdsbookError
from adsbook.logging import bind_account, configure_logging

if TYPE_CHECKING:
    from collections.abc import Callable


def _get_db(settings: Settings) -> Database:
    settings.ensure_data_dir()
    db = Database(settings.db_path)
    db.init_schema()
    return db


def _echo_json(value: Any) -> None:
    click.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))


def _read_document(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _with_db(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Open the store for the command, report domain errors and exit non-zero."""

    @wraps(fn)
    @click.pass_context
    def wrapper(ctx: click.Context, *args: Any, **kwargs: Any) -> Any:
        settings: Settings = ctx.obj["settings"]
        db = _get_db(settings)
        try:
            return fn(db, ctx.obj["account"], settings, *args, **kwargs)
        except AdsbookError as exc:
            click.echo(f"Error [{exc.code}]: {exc.message}", err=True)
            sys.exit(1)
        finally:
            db.close()

    return wrapper


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--account", "account_id", default=None, help="Account id (default from settings)")
@click.option("--marketplace", default=None, help="Marketplace code (default from settings)")
@click.pass_context
def cli(
    ctx: click.Context, verbose: bool, account_id: str | None, marketplace: str | None
) -> None:
    """adsbook: advertising experiment logbook."""
    ctx.ensure_object(dict)
    settings = Settings()
    log_level = "DEBUG" if verbose else settings.log_level
    configure_logging(log_level=log_level, log_format=settings.log_format)
    ctx.obj["settings"] = settings
    account = AccountContext(
        account_id=account_id or settings.account_id,
        marketplace=(marketplace or settings.marketplace).upper(),
    )
    bind_account(account)
    ctx.obj["account"] = account


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema."""
    settings = ctx.obj["settings"]
    db = _get_db(settings)
    db.close()
    click.echo(f"Database ready at {settings.db_path}")


@cli.command("import-facts")
@click.argument("path")
@_with_db
def import_facts(db: Database, account: AccountContext, _settings: Settings, path: str) -> None:
    """Load products, ad entities, performance and sales rows from a JSON file."""
    from adsbook.facts import import_facts as load

    counts = load(db, account, _read_document(path))
    click.echo(
        f"Imported {counts['products']} products, {counts['entities']} entities, "
        f"{counts['performance_rows']} performance rows, {counts['sales_rows']} sales rows."
    )


@cli.command("evidence-pack")
@click.argument("asin")
@click.option("--range", "requested_range", default="baseline", help="baseline|30d|60d|90d|180d|all")
@click.option("--end-date", default=None, help="Inclusive end date YYYY-MM-DD")
@click.option("--require-complete", is_flag=True, help="Fail instead of degrading on chunk errors")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None)
@_with_db
def evidence_pack(
    db: Database,
    account: AccountContext,
    settings: Settings,
    asin: str,
    requested_range: str,
    end_date: str | None,
    require_complete: bool,
    output: str | None,
) -> None:
    """Build the baseline evidence pack for a product."""
    from adsbook.evidence.builder import EvidencePackBuilder

    builder = EvidencePackBuilder.from_settings(
        db, settings, require_complete=True if require_complete else None
    )
    pack = builder.build(account, asin, requested_range, end_date)
    if output:
        Path(output).write_text(json.dumps(pack, indent=2, ensure_ascii=False) + "\n")
        meta = pack["metadata"]
        click.echo(f"Wrote {output} (status {meta['status']}, {len(meta['messages'])} messages)")
    else:
        _echo_json(pack)


@cli.command("import-proposal")
@click.argument("asin")
@click.argument("path")
@_with_db
def import_proposal(
    db: Database, account: AccountContext, _settings: Settings, asin: str, path: str
) -> None:
    """Create an experiment from a product experiment pack."""
    from adsbook.proposals.importer import ProposalImporter

    result = ProposalImporter(db).import_pack(account, asin, _read_document(path))
    click.echo(f"Created experiment {result['experiment_id']} ({result['status']})")
    for warning in result["warnings"]:
        click.echo(f"  warning: {warning}")


@cli.command("import-review-patch")
@click.argument("experiment_id")
@click.argument("path")
@_with_db
def import_review_patch(
    db: Database, account: AccountContext, _settings: Settings, experiment_id: str, path: str
) -> None:
    """Store review decisions for a proposed experiment."""
    from adsbook.review.service import ReviewService

    result = ReviewService(db).store_review_patch(account, experiment_id, _read_document(path))
    summary = result["summary"]
    click.echo(
        f"Stored review patch {result['review_patch_pack_id']}: "
        f"{summary['approved_actions']} approved, {summary['overridden_actions']} overridden, "
        f"{summary['rejected_actions']} rejected of {summary['actions_total']}"
    )
    for warning in result["warnings"]:
        click.echo(f"  warning: {warning}")


@cli.command()
@click.argument("experiment_id")
@_with_db
def finalize(
    db: Database, account: AccountContext, _settings: Settings, experiment_id: str
) -> None:
    """Lock the reviewed plan as the final plan."""
    from adsbook.review.service import ReviewService

    result = ReviewService(db).finalize_plan(account, experiment_id)
    click.echo(f"Finalized plan {result['final_plan_pack_id']}")
    for warning in result["warnings"]:
        click.echo(f"  warning: {warning}")


@cli.command("execution-plan")
@click.argument("experiment_id")
@click.option("--mark-executed", is_flag=True, help="Record the hand-off (FINALIZED -> EXECUTED)")
@_with_db
def execution_plan(
    db: Database,
    account: AccountContext,
    _settings: Settings,
    experiment_id: str,
    mark_executed: bool,
) -> None:
    """Print the finalized bulk-sheet plans."""
    from adsbook.review.selection import select_plans_for_execution
    from adsbook.review.service import ReviewService

    if mark_executed:
        result = ReviewService(db).hand_off_for_execution(account, experiment_id)
        _echo_json(result["bulkgen_plans"])
        return
    exp = db.require_experiment(account, experiment_id)
    selection = select_plans_for_execution(exp.scope)
    _echo_json([plan.to_document() for plan in selection.plans])


@cli.command("import-evaluation")
@click.argument("experiment_id")
@click.argument("path")
@_with_db
def import_evaluation(
    db: Database, account: AccountContext, _settings: Settings, experiment_id: str, path: str
) -> None:
    """Import an evaluation document for an experiment."""
    from adsbook.evaluation.importer import EvaluationImporter

    result = EvaluationImporter(db).import_pack(account, experiment_id, _read_document(path))
    kiv = result["applied"]["kiv"]
    click.echo(
        f"Evaluation {result['evaluation_id']} stored "
        f"(window {result['test_window_start']}..{result['test_window_end']}, "
        f"KIV created {kiv['created']}, updated {kiv['updated']})"
    )
    for warning in result["warnings"]:
        click.echo(f"  warning: {warning}")


@cli.command("rollback-pack")
@click.argument("experiment_id")
@click.option("--run-id", default=None, help="Only roll back changes of this run")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None)
@_with_db
def rollback_pack(
    db: Database,
    account: AccountContext,
    _settings: Settings,
    experiment_id: str,
    run_id: str | None,
    output: str | None,
) -> None:
    """Build a rollback pack from the experiment's linked changes."""
    from adsbook.filenames import rollback_pack_filename
    from adsbook.rollback import build_rollback_pack

    exp = db.require_experiment(account, experiment_id)
    pack = build_rollback_pack(
        {
            "experiment_id": exp.experiment_id,
            "asin": exp.asin or "UNKNOWN_ASIN",
            "marketplace": exp.marketplace,
        },
        db.list_experiment_changes(account, experiment_id),
        target_run_id=run_id,
    )
    target = output or rollback_pack_filename(exp.name, exp.experiment_id, run_id)
    Path(target).write_text(json.dumps(pack, indent=2, ensure_ascii=False) + "\n")
    click.echo(
        f"Wrote {target} ({pack['rollback']['rollback_action_count']} actions, "
        f"{len(pack['warnings'])} warnings)"
    )


@cli.command("experiments")
@click.option("--status", type=str, default=None, help="Filter by status")
@_with_db
def list_experiments(
    db: Database, account: AccountContext, _settings: Settings, status: str | None
) -> None:
    """List experiments."""
    experiments = db.list_experiments(account, status)
    if not experiments:
        click.echo("No experiments found.")
        return
    for exp in experiments:
        click.echo(f"  [{exp.experiment_id}] {exp.status:10s} {exp.asin or '-':12s} {exp.name}")


@cli.command()
@click.argument("experiment_id")
@_with_db
def show(db: Database, account: AccountContext, settings: Settings, experiment_id: str) -> None:
    """Show the full detail of an experiment as JSON."""
    from adsbook.detail import build_experiment_detail

    _echo_json(
        build_experiment_detail(
            db, account, experiment_id, major_limit=settings.timeline_major_limit
        )
    )
