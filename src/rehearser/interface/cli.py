"""rehearser CLI: review commands, statistics and calibration."""

import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer

from rehearser.application.config import resolve_config
from rehearser.application.factory import Services, build_services
from rehearser.application.id_service import generate_item_id
from rehearser.domain.errors import (
    InvalidScore,
    PersistenceFailure,
    PlanAlreadyClosed,
    PlanNotFound,
)
from rehearser.domain.scheduling.models import ConfidenceLevel, Item, ReviewPlan

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="rehearser: spaced-repetition tracker for algorithm practice.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage rehearser configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

NOT_SAVED = "Review not saved, please retry."


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    backend: Annotated[
        str | None, typer.Option(help="Record store backend: sql or memory.")
    ] = None,
    database_url: Annotated[
        str | None, typer.Option(help="SQLAlchemy database URL for the sql backend.")
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for rehearser."""
    ctx.ensure_object(dict)
    # Unset values fall through to the environment and config file.
    ctx.obj["overrides"] = {
        "backend": backend,
        "database_url": database_url,
        "verbose": verbose or None,
    }


def _services(ctx: typer.Context) -> Services:
    config = resolve_config((ctx.obj or {}).get("overrides"))
    if config.verbose > 1:
        logging.getLogger().setLevel(logging.DEBUG)
    return build_services(config)


def _plan_or_exit(services: Services, plan_id: str) -> ReviewPlan:
    plan = services.store.get_plan(plan_id)
    if plan is None:
        typer.secho(str(PlanNotFound(plan_id)), fg="red")
        raise typer.Exit(1)
    return plan


def _item_or_exit(services: Services, item_id: str) -> Item:
    item = services.store.get_item(item_id)
    if item is None:
        typer.secho(f"Item {item_id} not found", fg="red")
        raise typer.Exit(1)
    return item


def _fmt(moment: datetime | None) -> str:
    return moment.strftime("%Y-%m-%d %H:%M") if moment else "-"


def _echo_plans(services: Services, plans: list[ReviewPlan], empty: str) -> None:
    if not plans:
        typer.secho(empty, fg="green")
        return
    for plan in plans:
        item = services.store.get_item(plan.item_id)
        title = item.title if item else "(missing item)"
        typer.echo(
            f"{plan.id}  {_fmt(plan.scheduled_at)}  {plan.interval_level.name.lower():<8}  "
            f"ease {plan.ease_factor:.2f}  {title}"
        )


# ---------------------------------------------------------------------------
# Item and review commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Problem title.")],
    category: Annotated[
        str, typer.Option("--category", "-c", help="Category used for calibration.")
    ] = "",
):
    """[bold green]Add[/bold green] a problem and schedule its first review."""
    services = _services(ctx)
    item = Item(id=generate_item_id(), title=title, category=category)
    try:
        plan = services.engine.create_initial_plan(item)
    except PersistenceFailure as e:
        typer.secho(f"Item not saved, please retry. ({e})", fg="red")
        raise typer.Exit(1)
    typer.echo(f"Added {item.id}; first review {plan.id} at {_fmt(plan.scheduled_at)}")


@app.command()
def due(
    ctx: typer.Context,
    limit: Annotated[int | None, typer.Option(help="Show at most this many reviews.")] = None,
):
    """List reviews whose time has come."""
    services = _services(ctx)
    _echo_plans(services, services.due.get_due_reviews(limit=limit), "Nothing due.")


@app.command()
def today(ctx: typer.Context):
    """List reviews scheduled for today."""
    services = _services(ctx)
    _echo_plans(services, services.due.get_today_reviews(), "Nothing scheduled today.")


@app.command()
def overdue(ctx: typer.Context):
    """List reviews scheduled before today."""
    services = _services(ctx)
    _echo_plans(services, services.due.get_overdue_reviews(), "Nothing overdue.")


@app.command()
def complete(
    ctx: typer.Context,
    plan_id: Annotated[str, typer.Argument(help="Review plan to complete.")],
    score: Annotated[int, typer.Argument(help="Recall quality, 0 (blank) to 5 (perfect).")],
    confidence: Annotated[
        int, typer.Option(min=1, max=5, help="Confidence, 1 (very low) to 5 (very high).")
    ] = int(ConfidenceLevel.MEDIUM),
    time_spent: Annotated[
        float, typer.Option("--time-spent", min=0, help="Seconds spent on the attempt.")
    ] = 0,
):
    """[bold green]Complete[/bold green] a review and schedule the next one."""
    services = _services(ctx)
    plan = _plan_or_exit(services, plan_id)
    try:
        result = services.engine.complete_review(plan, score, confidence, time_spent)
    except InvalidScore as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(2)
    except (PlanAlreadyClosed, PlanNotFound) as e:
        typer.secho(str(e), fg="yellow")
        raise typer.Exit(1)
    except PersistenceFailure:
        typer.secho(f"{NOT_SAVED} (score {score})", fg="red")
        raise typer.Exit(1)

    if result is None:
        typer.secho(f"Plan {plan_id} has no item; nothing recorded.", fg="red")
        raise typer.Exit(1)
    if result is plan:
        typer.secho(f"Score {score} is outside 0-5; nothing recorded.", fg="yellow")
        return
    typer.echo(
        f"Next review {result.id} at {_fmt(result.scheduled_at)} "
        f"(level {result.interval_level.name.lower()}, ease {result.ease_factor:.2f})"
    )


@app.command()
def skip(
    ctx: typer.Context,
    plan_id: Annotated[str, typer.Argument(help="Review plan to skip.")],
):
    """Skip a review: to the end of today's queue, or to tomorrow."""
    services = _services(ctx)
    plan = _plan_or_exit(services, plan_id)
    try:
        result = services.engine.skip_review(plan)
    except (PlanAlreadyClosed, PlanNotFound) as e:
        typer.secho(str(e), fg="yellow")
        raise typer.Exit(1)
    except PersistenceFailure:
        typer.secho(NOT_SAVED, fg="red")
        raise typer.Exit(1)

    if result is None:
        typer.secho(f"Plan {plan_id} has no item; nothing recorded.", fg="red")
        raise typer.Exit(1)
    typer.echo(f"Moved to {_fmt(result.scheduled_at)} ({result.id})")


@app.command()
def postpone(
    ctx: typer.Context,
    plan_id: Annotated[str, typer.Argument(help="Review plan to postpone.")],
    days: Annotated[int, typer.Argument(min=0, help="Days to push the review back.")],
):
    """Postpone a review by a number of days."""
    services = _services(ctx)
    plan = _plan_or_exit(services, plan_id)
    if plan.status.is_terminal:
        typer.secho(str(PlanAlreadyClosed(plan.id, plan.status.value)), fg="yellow")
        raise typer.Exit(1)
    if not services.engine.postpone_review(plan, days):
        typer.secho(NOT_SAVED, fg="red")
        raise typer.Exit(1)
    typer.echo(f"Postponed {plan_id} by {days} day(s).")


# ---------------------------------------------------------------------------
# Insight commands
# ---------------------------------------------------------------------------


@app.command()
def stats(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item to summarize.")],
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show review statistics for an item."""
    services = _services(ctx)
    item = _item_or_exit(services, item_id)
    summary = services.statistics.get_review_statistics(item)

    if summary is None:
        if json_output:
            typer.echo(json.dumps(None))
        else:
            typer.secho("No completed reviews yet.", fg="yellow")
        return

    data = asdict(summary)
    data["average_interval"] = summary.average_interval.total_seconds()
    if json_output:
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"{item.title or item.id}  (mastery {item.mastery}/5)")
    typer.echo(f"  Reviews: {summary.total_reviews}  Avg score: {summary.average_score:.2f}")
    typer.echo(f"  Completion rate: {summary.completion_rate:.0%}")
    typer.echo(f"  Avg completion offset: {summary.average_interval.total_seconds() / 3600:.1f} h")
    typer.echo(f"  Streak: {summary.current_streak} (best {summary.longest_streak})")
    typer.echo(
        f"  This week: {summary.reviews_this_week}  This month: {summary.reviews_this_month}"
    )


@app.command("next")
def next_review(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item to look up.")],
):
    """Show when an item is next due."""
    services = _services(ctx)
    item = _item_or_exit(services, item_id)
    when = services.due.predict_next_review_date(item)
    if when is None:
        typer.secho("No pending review.", fg="yellow")
        return
    typer.echo(_fmt(when))


@app.command()
def calibrate(ctx: typer.Context):
    """Re-weight pending reviews per category from past scores."""
    services = _services(ctx)
    try:
        report = services.calibrator.adjust_difficulty_based_on_performance()
    except PersistenceFailure as e:
        typer.secho(f"Calibration not saved, please retry. ({e})", fg="red")
        raise typer.Exit(1)

    for entry in report.categories:
        typer.echo(
            f"{entry.category}: mean {entry.mean_score:.2f} over {entry.samples} "
            f"-> x{entry.factor} ({entry.plans_adjusted} plans)"
        )
    for category, samples in report.insufficient.items():
        typer.secho(f"{category}: only {samples} review(s), skipped", fg="yellow")
    typer.secho(f"Adjusted {report.plans_adjusted} pending plan(s).", fg="green")


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("rehearser.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = resolve_config((ctx.obj or {}).get("overrides"))
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))


def main() -> None:
    app()


