"""
Typer CLI for the NeuroPlay session engine.

Commands:
    neuroplay games                 - List the built-in game profiles
    neuroplay play GAME             - Play a game in the terminal
    neuroplay sessions              - List unfinished sessions for an actor
    neuroplay discard SESSION_ID    - Abandon an unfinished session

Usage:
    neuroplay play memoria-colorida --actor alice
    neuroplay play silaba-magica --guest
    neuroplay sessions --actor alice
"""

from __future__ import annotations

import random
from typing import Any, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import get_settings
from neuroplay.engine import (
    Challenge,
    ConflictError,
    EngineError,
    GameDomain,
    GameEngine,
    Phase,
    PhaseEvent,
    RecoveryLocator,
    StartWriteFailure,
    StoreError,
    SystemClock,
    UnknownGameError,
    get_profile,
    list_profiles,
)
from neuroplay.logging_config import configure_logging
from neuroplay.store import get_record_store

app = typer.Typer(
    name="neuroplay",
    help="NeuroPlay: adaptive cognitive game sessions",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

COLOR_STYLES = {
    "red": "bold red",
    "blue": "bold blue",
    "green": "bold green",
    "yellow": "bold yellow",
    "purple": "bold magenta",
    "orange": "bold dark_orange",
}


def style_value(value: Any) -> str:
    style = COLOR_STYLES.get(str(value))
    return f"[{style}]{value}[/{style}]" if style else f"[bold cyan]{value}[/bold cyan]"


def display_value(value: Any, challenge: Challenge | None) -> str:
    """Pattern cells are shown 1-based, matching the answer prompt."""
    if challenge is not None and challenge.domain is GameDomain.PATTERN:
        return style_value(challenge.options.index(value) + 1)
    return style_value(value)


# =============================================================================
# Display Helpers
# =============================================================================


def _render_event(event: PhaseEvent) -> None:
    """Phase listener: draws the terminal view of each transition."""
    status = event.status
    header = (
        f"Round {event.round_number}  |  Level {status.get('level', '-')}  |  "
        f"Score {status.get('score', 0)}"
    )
    if status.get("lives") is not None:
        header += f"  |  Lives {status['lives']}"

    if event.phase is Phase.SHOWING:
        if event.previous is not Phase.SHOWING:
            console.clear()
            console.print(Panel("Watch carefully...", title=header, title_align="left", border_style="cyan"))
        if event.visible_item is not None:
            shown = display_value(event.visible_item.value, event.challenge)
            console.print(f"  {event.visible_item.index + 1}. {shown}")
    elif event.phase is Phase.INPUT:
        console.clear()
        console.print(Panel("Your turn!", title=header, title_align="left", border_style="yellow"))
    elif event.phase is Phase.FEEDBACK:
        if event.is_correct:
            console.print("\n[green]✓ Correct![/green]")
        elif event.attempt is not None and event.attempt.timed_out:
            console.print("\n[red]✗ Time is up[/red]")
        else:
            console.print("\n[red]✗ Not quite[/red]")


def _display_summary(summary: dict[str, Any]) -> None:
    table = Table(title="Session Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Status", str(summary.get("status")))
    table.add_row("Score", str(summary.get("score")))
    table.add_row("Highest level", str(summary.get("max_level")))
    table.add_row("Rounds", f"{summary.get('rounds_correct')}/{summary.get('rounds')}")
    table.add_row("Accuracy", f"{summary.get('accuracy_percentage')}%")
    table.add_row("Avg reaction", f"{summary.get('avg_reaction_time_ms')} ms")
    console.print()
    console.print(table)


def _prompt_answers(engine: GameEngine) -> list[str] | None:
    """Read one line of answers. None means the player wants to quit."""
    challenge = engine.challenge
    if challenge is None:
        return []

    if challenge.domain is GameDomain.SYMBOLIC:
        for i, option in enumerate(challenge.options, 1):
            console.print(f"  {i}. {option}")
        raw = Prompt.ask("Which word? (number or word, q to quit)")
    elif challenge.domain is GameDomain.PATTERN:
        raw = Prompt.ask(f"Cells 1-{len(challenge.options)}, space separated (q to quit)")
    else:
        choices = "  ".join(f"{i}={style_value(v)}" for i, v in enumerate(challenge.options, 1))
        console.print(f"  {choices}")
        raw = Prompt.ask("Repeat the sequence, space separated (q to quit)")

    if raw.strip().lower() in ("q", "quit", "exit"):
        return None
    return raw.split() if challenge.domain is not GameDomain.SYMBOLIC else [raw.strip()]


def _parse_answer(token: str, engine: GameEngine) -> Any:
    """Map a typed token to an option value (1-based index or the value itself)."""
    challenge = engine.challenge
    options = challenge.options if challenge else ()
    if token.isdigit():
        idx = int(token) - 1
        if 0 <= idx < len(options):
            return options[idx]
    lowered = token.lower()
    for option in options:
        if str(option).lower() == lowered:
            return option
    return token


def _wait_for_timers(engine: GameEngine, clock: SystemClock) -> None:
    """Sleep through SHOWING / FEEDBACK, letting tick() drive the transitions."""
    while engine.context is not None and engine.phase in (Phase.SHOWING, Phase.FEEDBACK):
        clock.sleep_ms(engine.context.machine.time_remaining_ms())
        engine.tick()


# =============================================================================
# Commands
# =============================================================================


@app.command()
def games() -> None:
    """List the available game profiles."""
    table = Table(title="Games")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Domain")
    table.add_column("Category", style="dim")
    table.add_column("Max level", justify="right")
    table.add_column("Lives", justify="right")

    for profile in list_profiles():
        table.add_row(
            profile.game_id,
            profile.title,
            profile.domain.value,
            profile.category,
            str(profile.max_level),
            "∞" if profile.lives is None else str(profile.lives),
        )
    console.print(table)


@app.command()
def play(
    game_id: str = typer.Argument(..., help="Game profile id (see 'neuroplay games')"),
    actor: Optional[str] = typer.Option(None, "--actor", "-a", help="Player id; progress is saved"),
    guest: bool = typer.Option(False, "--guest", help="Play without saving progress"),
    level: int = typer.Option(1, "--level", "-l", min=1, help="Starting level"),
    resume: Optional[bool] = typer.Option(
        None,
        "--resume/--new",
        help="Resume the latest unfinished session or start a new one (asks when omitted)",
    ),
    fixed: bool = typer.Option(False, "--fixed", help="Disable adaptive difficulty"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for challenges"),
) -> None:
    """
    Play a game in the terminal.

    With --actor the session is checkpointed to the configured store and can be
    resumed after a crash. Ctrl+C saves progress and leaves the session open.
    """
    settings = get_settings()
    try:
        profile = get_profile(game_id)
    except UnknownGameError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    actor_id = None if guest else actor
    store = get_record_store(settings) if actor_id else None
    clock = SystemClock()
    engine = GameEngine(
        profile,
        store=store,
        clock=clock,
        actor_id=actor_id,
        settings=settings,
        rng=random.Random(seed) if seed is not None else None,
        adaptive=False if fixed else None,
    )
    engine.add_listener(_render_event)

    console.print(f"\n[bold cyan]{profile.title}[/bold cyan]")
    console.print("=" * 40)

    try:
        if not _open_session(engine, level, resume):
            raise typer.Exit(0)
    except StartWriteFailure as e:
        logger.error(str(e))
        console.print("[red]Could not start the session.[/red]")
        console.print("[dim]Check the store connection (DATABASE_URL / REST_URL) and try again.[/dim]")
        raise typer.Exit(1)
    except ConflictError as e:
        console.print(f"[yellow]{e}[/yellow]")
        console.print("[dim]Use --resume, or 'neuroplay discard <id>' first.[/dim]")
        raise typer.Exit(1)
    except StoreError as e:
        console.print(f"[red]Store unavailable: {e}[/red]")
        raise typer.Exit(1)

    try:
        engine.begin()
        while engine.context is not None:
            _wait_for_timers(engine, clock)
            if engine.context is None:
                break
            if engine.phase is Phase.INPUT:
                answers = _prompt_answers(engine)
                if answers is None:
                    engine.exit()
                    break
                for token in answers:
                    if engine.submit(_parse_answer(token, engine)) is None:
                        break
                    if engine.phase is not Phase.INPUT:
                        break
                if engine.phase is Phase.INPUT:
                    # Incomplete answer: let the input budget run out
                    clock.sleep_ms(engine.context.machine.time_remaining_ms())
                    engine.tick()
    except KeyboardInterrupt:
        engine.on_unload()
        console.print("\n\n[yellow]Session paused. Progress saved; resume it later.[/yellow]")
        raise typer.Exit(0)

    if engine.last_summary:
        _display_summary(engine.last_summary)


def _open_session(engine: GameEngine, level: int, resume: bool | None) -> bool:
    offer = engine.prepare()
    if offer.has_candidates and resume is not False:
        latest = offer.latest
        console.print(
            f"[yellow]Unfinished session found:[/yellow] level {latest.level}, score {latest.score} "
            f"(last saved {latest.last_checkpoint_at:%Y-%m-%d %H:%M})"
        )
        choice = "resume" if resume else Prompt.ask(
            "Resume, discard, or cancel?",
            choices=["resume", "discard", "cancel"],
            default="resume",
        )
        if choice == "cancel":
            return False
        if choice == "resume":
            state = engine.resume(latest.id)
            console.print(f"[green]Resumed at level {state.level} with {state.score} points.[/green]")
            return True
        engine.discard(latest.id)
        console.print("[dim]Previous session discarded.[/dim]")
    elif offer.has_candidates:
        for candidate in offer.candidates:
            engine.discard(candidate.id)

    session_id = engine.start_new(initial_level=level)
    logger.debug(f"Started session {session_id}")
    return True


@app.command()
def sessions(
    actor: str = typer.Option(..., "--actor", "-a", help="Player id"),
    game_id: Optional[str] = typer.Option(None, "--game", "-g", help="Filter by game"),
) -> None:
    """List unfinished sessions that can be resumed."""
    settings = get_settings()
    try:
        store = get_record_store(settings)
        locator = RecoveryLocator.from_settings(store, SystemClock(), settings)
        records = locator.find_unfinished(actor, game_id)
    except StoreError as e:
        console.print(f"[red]Store unavailable: {e}[/red]")
        raise typer.Exit(1)

    if not records:
        console.print("[green]No unfinished sessions.[/green]")
        return

    table = Table(title=f"Unfinished sessions for {actor}")
    table.add_column("ID", style="dim")
    table.add_column("Game", style="cyan")
    table.add_column("Level", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Last saved")
    for record in records:
        table.add_row(
            record.id,
            record.game_id,
            str(record.level),
            str(record.score),
            f"{record.last_checkpoint_at:%Y-%m-%d %H:%M}" if record.last_checkpoint_at else "-",
        )
    console.print(table)


@app.command()
def discard(
    session_id: str = typer.Argument(..., help="Session id to abandon"),
    actor: Optional[str] = typer.Option(None, "--actor", "-a", help="Only discard if owned by this actor"),
) -> None:
    """Abandon an unfinished session."""
    settings = get_settings()
    try:
        store = get_record_store(settings)
        RecoveryLocator.from_settings(store, SystemClock(), settings).discard(session_id, actor)
    except EngineError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Session {session_id} discarded.[/green]")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    app()


if __name__ == "__main__":
    main()
