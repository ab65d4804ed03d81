from __future__ import annotations

import json
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from ripple.seed import SeedManager
from ripple.core.cascade import CascadeEngine, CascadeOptions
from ripple.core.consequence import Consequence
from ripple.core.errors import ConfigurationError
from ripple.renderer.tree import render_cascade, render_visualization_summary
from ripple.renderer.visualization import VisualizationBuilder


DEFAULT_LEVELS = 3
DEFAULT_PER_LEVEL = 4
DEFAULT_THRESHOLD = 0.3
DEFAULT_ACTION_ID = "player-action"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("ripple")
    logger.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=Console(stderr=True),
                                      show_path=False, rich_tracebacks=True))


def _load_consequences(path: str) -> tuple[list[dict], dict]:
    """Read a JSON list of consequences, or an object carrying one under
    "consequences" plus optional actionId / actionDescription."""
    try:
        with open(path, encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise click.BadParameter(str(exc), param_hint="--consequences") from exc

    if isinstance(payload, list):
        return payload, {}
    if isinstance(payload, dict) and isinstance(payload.get("consequences"), list):
        return payload["consequences"], payload
    raise click.BadParameter("expected a list of consequences or an object with "
                             "a 'consequences' list", param_hint="--consequences")


@click.command()
@click.option("--consequences", "-c", "consequences_file",
              type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON file with the primary consequences.")
@click.option("--event", "-e", "events", multiple=True,
              help="Free-text consequence; type and impact are inferred. Repeatable.")
@click.option("--action-id", type=str, default=None,
              help="Identifier of the player action.")
@click.option("--action", "action_description", type=str, default=None,
              help="Description of the player action.")
@click.option("--seed", type=int, default=None, envvar="RIPPLE_SEED",
              help="Deterministic seed. Same seed + input = same cascade.")
@click.option("--levels", "-l", type=int, default=DEFAULT_LEVELS,
              help="Maximum cascade levels.")
@click.option("--per-level", type=int, default=DEFAULT_PER_LEVEL,
              help="Maximum direct effects kept per parent and level.")
@click.option("--threshold", "-t", type=float, default=DEFAULT_THRESHOLD,
              help="Minimum probability for a direct effect.")
@click.option("--no-indirect", is_flag=True, default=False,
              help="Skip indirect effects.")
@click.option("--json", "json_path", type=click.Path(dir_okay=False, writable=True),
              default=None, help="Write the visualization payload to this file.")
@click.option("--no-animate", is_flag=True, default=False,
              help="Disable animation.")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False),
              default="WARNING", envvar="RIPPLE_LOG_LEVEL", show_default=True)
def main(consequences_file: str | None, events: tuple[str, ...],
         action_id: str | None, action_description: str | None, seed: int | None,
         levels: int, per_level: int, threshold: float, no_indirect: bool,
         json_path: str | None, no_animate: bool, log_level: str) -> None:

    _configure_logging(log_level)
    console = Console()

    try:
        options = CascadeOptions(
            max_levels=levels,
            max_effects_per_level=per_level,
            probability_threshold=threshold,
            include_indirect=not no_indirect,
        )
    except ConfigurationError as exc:
        raise click.UsageError(str(exc)) from exc

    seed_mgr = SeedManager(seed=seed)

    raw: list = []
    payload: dict = {}
    if consequences_file:
        raw, payload = _load_consequences(consequences_file)
    action_id = action_id or payload.get("actionId") or DEFAULT_ACTION_ID
    action_description = action_description or payload.get("actionDescription") or ""

    if not raw and not events:
        events = (console.input("  [bold cyan]What happened? > [/bold cyan]"),)

    consequences = [
        Consequence(id=seed_mgr.uuid(), description=text, action_id=action_id)
        for text in events
    ]
    consequences.extend(raw)

    console.print(f"  [dim]Seed: {seed_mgr.base_seed}[/dim]")

    engine = CascadeEngine(seed_mgr=seed_mgr)
    network = engine.expand(consequences, options)
    render_cascade(network, console, animated=not no_animate,
                   action_label=action_description or "Player Action")

    builder = VisualizationBuilder(engine)
    data = builder.render(action_id, action_description, network=network,
                          seed_mgr=seed_mgr.fork("visualization"))
    render_visualization_summary(data, console)

    if json_path:
        with open(json_path, "w", encoding="utf-8") as fh:
            json.dump(data.to_dict(), fh, indent=2)
        console.print(f"  [dim]Wrote {json_path}[/dim]")


if __name__ == "__main__":
    main()
