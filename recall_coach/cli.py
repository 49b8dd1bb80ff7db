"""
recall-coach: command line interface.

A Rich terminal interface over the review coach.

Commands:
- recall-coach add FILE    - Register extracted review items from JSON
- recall-coach due         - Show the next due question
- recall-coach answer ID   - Record a graded answer
- recall-coach skip ID     - Skip a review
- recall-coach items       - List items (filter by tag or topic)
- recall-coach spar TOPIC  - Start a sparring session
- recall-coach stats       - Show the learning dashboard
- recall-coach level       - Show level info
- recall-coach evening     - Show today's summary
- recall-coach weekly      - Build and store the weekly report
- recall-coach run         - Run the review triggers until interrupted
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import Settings, get_settings
from .delivery import ConsoleDelivery
from .errors import RecallCoachError
from .triggers import ReviewTriggers
from .tutor import ReviewCoach

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="recall-coach",
    help="recall-coach: spaced repetition review coach",
    no_args_is_help=True,
)
console = Console()

STYLES = {
    "correct": "bold green",
    "incorrect": "bold red",
    "info": "bold cyan",
    "warning": "bold yellow",
    "dim": "dim",
}


def _fail(message: str) -> typer.Exit:
    console.print(f"[{STYLES['incorrect']}]{escape(message)}[/{STYLES['incorrect']}]")
    return typer.Exit(1)


def _settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as exc:
        raise _fail(f"Invalid configuration:\n{exc}") from exc


def _coach() -> ReviewCoach:
    try:
        return ReviewCoach.from_settings(_settings())
    except RecallCoachError as exc:
        raise _fail(str(exc)) from exc


def _panel(text: str, title: str | None = None, style: str = "cyan", markup: bool = False) -> None:
    body = text if markup else Text(text)
    console.print(Panel(body, title=title, title_align="left", border_style=style, padding=(1, 2)))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def add(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON array of extracted items"),
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Session topic (defaults to file name)"),
) -> None:
    """
    Register review items produced by the extraction step.

    Each entry needs topic, question and expectedAnswer; difficulty
    (1-5) and tags are optional.
    """
    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise _fail(f"Cannot read {file}: {exc}") from exc

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise _fail("Expected a JSON array of items")

    coach = _coach()
    try:
        result = coach.register_extracted_items(payload, topic or file.stem)
    except ValidationError as exc:
        raise _fail(f"Invalid item:\n{exc}") from exc

    _panel(result.message, title="Registered", style="green")


@app.command()
def due() -> None:
    """Show the next question due for review."""
    coach = _coach()
    question = coach.next_question()

    if question is None:
        console.print(f"[{STYLES['correct']}]Nothing is due right now.[/{STYLES['correct']}]")
        return

    header = f"Due: {question.due_count}  |  {question.archetype.kind}  |  stage {question.stage}"
    content = f"{escape(question.text)}\n\n[dim]{question.archetype.description}\nitem id: {question.item.id}[/dim]"
    _panel(content, title=header, markup=True)


@app.command()
def answer(
    item_id: str = typer.Argument(..., help="Item id shown by 'due'"),
    correct: bool = typer.Option(..., "--correct/--wrong", help="Whether the answer was right"),
    user_answer: Optional[str] = typer.Option(None, "--answer", "-a", help="What you answered"),
    feedback: Optional[str] = typer.Option(None, "--feedback", "-f", help="Grader feedback"),
) -> None:
    """Record a graded answer."""
    outcome = _coach().process_review_answer(item_id, user_answer, correct, feedback)
    if not outcome.found:
        raise _fail(outcome.message)

    _panel(outcome.message, style="green" if correct else "red")


@app.command()
def skip(
    item_id: str = typer.Argument(..., help="Item id shown by 'due'"),
) -> None:
    """Skip a review without moving the schedule."""
    outcome = _coach().skip_review(item_id)
    if not outcome.found:
        raise _fail(outcome.message)
    console.print(Text(outcome.message, style=STYLES["dim"]))


@app.command()
def items(
    tag: Optional[str] = typer.Option(None, "--tag", help="Only items with this tag"),
    topic: Optional[str] = typer.Option(None, "--topic", help="Only topics containing this text"),
) -> None:
    """List stored items with their schedule."""
    coach = _coach()
    store = coach.store

    if tag:
        selected = store.find_by_tag(tag)
    elif topic:
        selected = store.find_by_topic(topic)
    else:
        selected = store.get_all_items()

    if topic and tag:
        wanted = topic.casefold()
        selected = [i for i in selected if wanted in i.topic.casefold()]

    table = Table()
    table.add_column("ID", style="dim")
    table.add_column("Topic")
    table.add_column("Stage", justify="right")
    table.add_column("Next due")
    table.add_column("Tags", style="dim")

    for item in selected:
        state = store.get_scheduling_state(item.id)
        table.add_row(
            item.id,
            escape(item.topic),
            str(state.stage) if state else "-",
            f"{state.next_due:%Y-%m-%d %H:%M}" if state and state.next_due else "-",
            escape(", ".join(item.tags)),
        )

    console.print(table)
    console.print(f"[dim]{len(selected)} items[/dim]")


@app.command()
def spar(
    topic: str = typer.Argument(..., help="Topic to defend"),
    prompt: bool = typer.Option(False, "--prompt", help="Also print the language model system prompt"),
) -> None:
    """Start an adversarial sparring session on a topic."""
    start = _coach().start_sparring(topic)

    if prompt:
        console.print(start.system_prompt, markup=False)
        console.print()
    _panel(f"{start.first_challenge}\n\nsession id: {start.session.id}", title="Sparring", style="magenta")


@app.command()
def stats() -> None:
    """Show learning statistics and progress."""
    _panel(_coach().status_report(), title="Stats")


@app.command()
def level() -> None:
    """Show the learner level and a difficulty recommendation."""
    _panel(_coach().level_info(), title="Level")


@app.command()
def evening() -> None:
    """Summarize what was studied today."""
    _panel(_coach().handle_evening_summary(), title="Evening")


@app.command()
def weekly(
    prompt: bool = typer.Option(False, "--prompt", help="Print the language model prompt instead"),
) -> None:
    """Build, store and show the weekly report."""
    coach = _coach()
    if prompt:
        console.print(coach.weekly_report_prompt(), markup=False)
        return
    _panel(coach.handle_weekly_report(), title="Weekly Report")


@app.command()
def run() -> None:
    """Run the morning, evening and weekly triggers until interrupted."""
    coach = _coach()
    triggers = ReviewTriggers(coach, ConsoleDelivery(console))

    config = coach.settings.get_trigger_config()
    console.print(
        f"[{STYLES['info']}]Triggers running[/{STYLES['info']}] "
        f"(morning {config['morning']}, evening {config['evening']}, "
        f"weekly day {config['weekly']['weekday']} {config['weekly']['time']}, {config['timezone']})"
    )

    triggers.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping...[/dim]")
    finally:
        triggers.stop()


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    try:
        level_name = get_settings().log_level
    except ValidationError:
        level_name = "WARNING"

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=level_name,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
