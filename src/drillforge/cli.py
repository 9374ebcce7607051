"""CLI entry point for DrillForge."""

import json
from pathlib import Path

import click


def _coach(ctx: click.Context):
    from drillforge.config.settings import Settings
    from drillforge.service.coach import Coach

    settings = Settings.load()
    if ctx.obj.get("data_dir"):
        settings.data_dir = ctx.obj["data_dir"]
    return Coach(settings=settings)


@click.group()
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding state.db (overrides config)",
)
@click.pass_context
def main(ctx: click.Context, data_dir) -> None:
    """DrillForge: adaptive drill assignment and progression."""
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir


@main.command()
@click.pass_context
def categories(ctx: click.Context) -> None:
    """List drill categories in the catalog."""
    coach = _coach(ctx)
    for category in coach.catalog.list_categories():
        click.echo(f"  {category}: {len(coach.catalog.for_category(category))} drills")


@main.command()
@click.argument("user_id")
@click.argument("category")
@click.option("--difficulty", type=click.Choice(["easy", "medium", "hard"]), default=None)
@click.option("--goal", default=None, help="Training goal, e.g. pro, scouted, scholarship, best-team")
@click.pass_context
def assign(ctx: click.Context, user_id: str, category: str, difficulty, goal) -> None:
    """Assign the next drill for USER_ID in CATEGORY."""
    result = _coach(ctx).assign(user_id, category, difficulty=difficulty, goal=goal)
    meta = result.meta
    click.echo(f"{result.drill.id}: {result.drill.title} (difficulty {result.drill.difficulty_score})")
    click.echo(
        f"  target {meta.d_target}, window {meta.window.low}-{meta.window.high}, "
        f"confidence {meta.confidence_before:.2f}, reason {meta.reason}"
    )


@main.command()
@click.argument("user_id")
@click.pass_context
def progress(ctx: click.Context, user_id: str) -> None:
    """Show XP, streak and per-category confidence for USER_ID."""
    click.echo(json.dumps(_coach(ctx).progress(user_id), indent=2))


@main.command()
def serve() -> None:
    """Run the JSON-lines server on stdin/stdout."""
    from drillforge.server.__main__ import run

    run()
