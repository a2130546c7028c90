"""
Vocab: terminal interface for the review engine.

A Rich terminal interface for spaced vocabulary review.

Commands:
- vocab study    - Review due items and introduce new ones
- vocab learn    - Learn new words one by one, with a batch review every 10
- vocab batch    - Quiz introduced items until every one is answered correctly
- vocab stats    - Show learning progress
"""
from __future__ import annotations

import asyncio
import random
import sys
from collections.abc import Coroutine, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, TypeVar

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from config import Settings, get_settings

from .batch import BatchMistakeLoop, BatchResult, chunk_batches
from .catalog import Catalog
from .content import ExerciseSource, GeminiContentProvider
from .errors import InvalidRating
from .exercises import AnswerResult, Exercise, FreeText, LocalExerciseFactory, MultipleChoice
from .interval import MAX_RATING, MIN_RATING
from .guided import LESSON_PASS, CourseResult, GuidedCourse
from .models import ConfidenceRating, ItemContent, LearningItem
from .session import EventTag, ReviewSession, SessionEvent, SessionPhase, SessionSummary
from .state_store import OutboxStateStore, SQLStateStore, StateStore
from .stats import MASTERY_INTERVAL_DAYS, summarize_progress

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="vocab",
    help="Vocab: spaced repetition vocabulary review",
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


def configure_logging(settings: Settings) -> None:
    """Send logs to stderr at the configured level, and to a file if set."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


# =============================================================================
# Wiring
# =============================================================================


def build_store(settings: Settings) -> StateStore:
    store: StateStore = SQLStateStore(settings.database_url)
    if settings.persistence_outbox_size > 0:
        store = OutboxStateStore(store, settings.persistence_outbox_size)
    return store


def build_exercise_source(
    settings: Settings, catalog: Catalog, offline: bool = False
) -> tuple[ExerciseSource, GeminiContentProvider | None]:
    fallback = LocalExerciseFactory(catalog, rng=random.Random(settings.fallback_seed))
    provider = None
    if settings.has_ai_configured() and not offline:
        provider = GeminiContentProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.content_timeout_seconds,
        )
    source = ExerciseSource(fallback, provider, timeout_seconds=settings.content_timeout_seconds)
    return source, provider


def load_catalog(path: Optional[Path], settings: Settings) -> Catalog:
    catalog_path = path or Path(settings.catalog_path)
    try:
        catalog = Catalog.load(catalog_path)
    except FileNotFoundError:
        console.print(f"\n[red]Catalog not found:[/red] {catalog_path.absolute()}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"\n[red]Invalid catalog:[/red] {e}")
        raise typer.Exit(1)

    if len(catalog) == 0:
        console.print(f"\n[red]Catalog {catalog_path} has no items.[/red]")
        raise typer.Exit(1)
    return catalog


def close_store(store: StateStore) -> None:
    close = getattr(store, "close", None)
    if close is not None:
        close()


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine on a fresh event loop.

    Unlike asyncio.run this keeps the default SIGINT handler, so Ctrl-C
    raises KeyboardInterrupt inside a blocking prompt.
    """
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()


# =============================================================================
# Display Helpers
# =============================================================================


def display_item(item: LearningItem, definition: str, examples: tuple[str, ...], header: str) -> None:
    content = f"[bold]{item.term}[/bold]\n\n{definition}"
    for example in examples:
        content += f"\n\n[italic]{example}[/italic]"
    if item.category:
        content += f"\n\n[dim]{item.category}[/dim]"
    console.print(Panel(content, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_exercise(exercise: Exercise) -> None:
    if isinstance(exercise, MultipleChoice):
        body = f"[italic]{exercise.context}[/italic]\n\n" if exercise.context else ""
        body += f"[bold]{exercise.prompt}[/bold]\n"
        for i, option in enumerate(exercise.options, 1):
            body += f"\n  {i}. {option.text}"
    else:
        body = f"[bold]{exercise.prompt}[/bold]"
    console.print(Panel(body, border_style="blue", padding=(1, 2)))


def display_result(result: AnswerResult) -> None:
    style = STYLES["correct"] if result.correct else STYLES["incorrect"]
    console.print(f"[{style}]{result.feedback}[/{style}]")


def display_summary(summary: SessionSummary) -> None:
    if summary.empty:
        return
    title = "Session Abandoned" if summary.abandoned else "Session Complete!"
    body = (
        f"[bold]{title}[/bold]\n\n"
        f"Items rated: {summary.items_rated}/{summary.items_total}\n"
        f"Exercises answered: {summary.exercises_answered}\n"
        f"Accuracy: {summary.accuracy * 100:.1f}%"
    )
    if summary.persistence_failures:
        body += f"\n[yellow]Unsaved ratings: {summary.persistence_failures}[/yellow]"
    console.print(Panel(body, title="Summary", border_style="green"))


def ask_answer(exercise: Exercise) -> int | str:
    if isinstance(exercise, MultipleChoice):
        choices = [str(i) for i in range(1, len(exercise.options) + 1)]
        return IntPrompt.ask("Your answer", choices=choices) - 1
    if isinstance(exercise, FreeText):
        return Prompt.ask("Your answer")
    raise TypeError(f"Unsupported exercise type: {type(exercise).__name__}")


def ask_rating() -> int:
    legend = "  ".join(f"{r.value}={r.label}" for r in reversed(ConfidenceRating))
    console.print(f"[dim]{legend}[/dim]")
    return IntPrompt.ask("How well did you know it?")


class ConsolePresenter:
    """Renders session events."""

    def __call__(self, event: SessionEvent) -> None:
        if event.tag is EventTag.PRESENTING:
            content = event.content
            header = "Review" if not content.is_fallback else "Review (offline)"
            display_item(event.item, content.definition, content.examples, header)
        elif event.tag is EventTag.ANSWERING:
            display_exercise(event.exercise)
        elif event.tag is EventTag.NOTHING_DUE:
            console.print("\n[green]Nothing due for review![/green]")
            console.print("All caught up. Check back tomorrow.")
        elif event.tag is EventTag.PERSISTENCE_FAILED:
            if event.item is None:
                console.print("[red]Could not load your progress. Try again later.[/red]")
            else:
                console.print(f"[yellow]Progress for {event.item.term} not saved.[/yellow]")
        elif event.tag is EventTag.SESSION_COMPLETE:
            display_summary(event.summary)


class ConsoleLearner:
    """Lesson and batch learner that prompts on the terminal."""

    def introduce(self, item: LearningItem, content: ItemContent) -> None:
        header = "New word" if not content.is_fallback else "New word (offline)"
        display_item(item, content.definition, content.examples, header)

    def practiced(self, item: LearningItem, result: AnswerResult) -> None:
        display_result(result)

    def answer(self, item: LearningItem, exercise: Exercise, pass_number: int) -> int | str:
        if pass_number > LESSON_PASS:
            console.print(f"\n[dim]Pass {pass_number}[/dim]")
        display_exercise(exercise)
        return ask_answer(exercise)

    def acknowledge(self, item: LearningItem, result: AnswerResult) -> None:
        console.print(
            Panel(
                f"[bold]{item.term}[/bold]\n\n{item.meaning}",
                title="[bold red]Not quite[/bold red]",
                border_style="red",
            )
        )
        Prompt.ask("[dim]Press Enter to continue[/dim]", default="", show_default=False)


# =============================================================================
# Runners
# =============================================================================


async def run_study(session: ReviewSession) -> SessionSummary:
    """Drive a session from the terminal until it completes."""
    try:
        await session.start()
        while not session.is_complete:
            if session.phase is SessionPhase.ANSWERING:
                result = session.submit_answer(ask_answer(session.current_exercise))
                display_result(result)
            elif session.phase is SessionPhase.RATING:
                try:
                    await session.submit_rating(ask_rating())
                except InvalidRating:
                    console.print(f"[yellow]Pick a number from {MIN_RATING} to {MAX_RATING}.[/yellow]")
    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted.[/yellow]")
        session.abandon()
    finally:
        await session.drain()
    return session.summary


def pick_batch_items(
    catalog: Catalog,
    states: dict,
    mistakes: dict[str, int],
    learned: Iterable[str] = (),
) -> list[LearningItem]:
    """
    Introduced but unmastered items, most missed first.

    An item is introduced once it has a review state or a finished lesson.
    Unseen items are never picked.
    """
    learned_ids = set(learned)
    introduced = [
        item
        for item in catalog
        if (item.id in states or item.id in learned_ids)
        and (item.id not in states or states[item.id].interval <= MASTERY_INTERVAL_DAYS)
    ]
    return sorted(introduced, key=lambda item: -mistakes.get(item.id, 0))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def study(
    catalog_path: Optional[Path] = typer.Option(
        None,
        "--catalog", "-c",
        help="Catalog JSON file",
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Learner id"),
    new_limit: Optional[int] = typer.Option(
        None,
        "--new", "-n",
        min=0,
        help="Maximum new items this session",
    ),
    offline: bool = typer.Option(False, "--offline", help="Use local exercises only"),
) -> None:
    """
    Start an interactive review session.

    Due items come first, most fragile first, followed by new items.
    Progress is saved after every rating.
    """
    settings = get_settings()
    catalog = load_catalog(catalog_path, settings)
    store = build_store(settings)
    source, provider = build_exercise_source(settings, catalog, offline=offline)

    console.print("\n[bold cyan]Vocab[/bold cyan] - Review Session", style="bold")
    console.print("=" * 40)

    session = ReviewSession(
        user_id=user or settings.default_user_id,
        catalog=catalog,
        store=store,
        exercises=source,
        new_item_cap=settings.new_item_cap if new_limit is None else new_limit,
        on_event=ConsolePresenter(),
    )

    async def _run() -> None:
        try:
            await run_study(session)
        finally:
            if provider is not None:
                await provider.close()

    try:
        run_async(_run())
    finally:
        close_store(store)


@app.command()
def learn(
    catalog_path: Optional[Path] = typer.Option(
        None,
        "--catalog", "-c",
        help="Catalog JSON file",
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Learner id"),
    words: Optional[int] = typer.Option(
        None,
        "--words", "-w",
        min=1,
        help="Maximum new words this run",
    ),
    size: Optional[int] = typer.Option(None, "--size", "-s", min=1, help="Words per batch review"),
    max_passes: Optional[int] = typer.Option(
        None,
        "--max-passes",
        min=1,
        help="Stop a batch review after this many passes",
    ),
    offline: bool = typer.Option(False, "--offline", help="Use local exercises only"),
) -> None:
    """
    Learn new words one at a time.

    Every word gets a short lesson. After each batch of learned words
    (10 by default) those words are quizzed until none is missed.
    """
    settings = get_settings()
    catalog = load_catalog(catalog_path, settings)
    store = build_store(settings)
    source, provider = build_exercise_source(settings, catalog, offline=offline)

    console.print("\n[bold cyan]Vocab[/bold cyan] - Guided Learning", style="bold")
    console.print("=" * 40)

    course = GuidedCourse(
        user_id=user or settings.default_user_id,
        catalog=catalog,
        store=store,
        exercises=source,
        learner=ConsoleLearner(),
        batch_size=size or settings.batch_size,
        max_passes=max_passes or settings.batch_max_passes,
    )

    async def _run() -> CourseResult | None:
        try:
            return await course.run(limit=words)
        except KeyboardInterrupt:
            console.print("\n\n[yellow]Lesson interrupted. Finished words are saved.[/yellow]")
            return None
        finally:
            await course.batch_loop.drain()
            if provider is not None:
                await provider.close()

    try:
        result = run_async(_run())
    finally:
        close_store(store)

    if result is None:
        return
    if result.persistence_failures and not result.learned:
        console.print("[red]Could not load your progress. Try again later.[/red]")
        return
    console.print(f"\n[green]Learned {len(result.learned)} new words.[/green]")
    for number, batch_result in enumerate(result.batches, 1):
        console.print(
            f"[dim]Batch review {number}: {batch_result.mastered_count} mastered "
            f"in {batch_result.attempts_used} passes[/dim]"
        )
    if result.persistence_failures:
        console.print(f"[yellow]Unsaved lessons: {result.persistence_failures}[/yellow]")
    if result.complete:
        console.print("[bold green]Course complete![/bold green]")


@app.command()
def batch(
    catalog_path: Optional[Path] = typer.Option(
        None,
        "--catalog", "-c",
        help="Catalog JSON file",
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Learner id"),
    size: Optional[int] = typer.Option(None, "--size", "-s", min=1, help="Items per batch"),
    max_passes: Optional[int] = typer.Option(
        None,
        "--max-passes",
        min=1,
        help="Stop a batch after this many passes",
    ),
    offline: bool = typer.Option(False, "--offline", help="Use local exercises only"),
) -> None:
    """
    Quiz introduced items in batches until each batch has no mistakes.

    Wrong answers show the correct meaning and come back in the next pass.
    """
    settings = get_settings()
    catalog = load_catalog(catalog_path, settings)
    store = build_store(settings)
    source, provider = build_exercise_source(settings, catalog, offline=offline)
    user_id = user or settings.default_user_id

    loop = BatchMistakeLoop(
        exercises=source,
        learner=ConsoleLearner(),
        store=store,
        user_id=user_id,
        max_passes=max_passes or settings.batch_max_passes,
    )

    async def _run() -> list[BatchResult]:
        results: list[BatchResult] = []
        try:
            states = await store.get_all(user_id)
            mistakes = await store.get_mistakes(user_id)
            learned = await store.get_learned(user_id)
            items = pick_batch_items(catalog, states, mistakes, learned)
            if not items:
                console.print("\n[yellow]Nothing to practise yet.[/yellow]")
                console.print("Run [bold]vocab learn[/bold] or [bold]vocab study[/bold] first.")
                return results
            for number, items_batch in enumerate(chunk_batches(items, size or settings.batch_size), 1):
                if number > 1 and not Confirm.ask("Start the next batch?", default=True):
                    break
                console.print(f"\n[bold]Batch {number}: {len(items_batch)} items[/bold]")
                result = await loop.run_batch(items_batch)
                results.append(result)
                console.print(
                    f"[green]Mastered {result.mastered_count}/{len(items_batch)} "
                    f"in {result.attempts_used} passes[/green]"
                )
        except KeyboardInterrupt:
            console.print("\n\n[yellow]Batch interrupted.[/yellow]")
        finally:
            await loop.drain()
            if provider is not None:
                await provider.close()
        return results

    try:
        run_async(_run())
    finally:
        close_store(store)


@app.command()
def stats(
    catalog_path: Optional[Path] = typer.Option(
        None,
        "--catalog", "-c",
        help="Catalog JSON file",
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Learner id"),
) -> None:
    """Show learning progress."""
    settings = get_settings()
    catalog = load_catalog(catalog_path, settings)
    store = build_store(settings)
    user_id = user or settings.default_user_id

    async def _load() -> tuple[dict, dict[str, int], list[str]]:
        return (
            await store.get_all(user_id),
            await store.get_mistakes(user_id),
            await store.get_learned(user_id),
        )

    try:
        states, mistakes, learned = run_async(_load())
    finally:
        close_store(store)
    progress = summarize_progress(catalog, states, datetime.now(timezone.utc))

    console.print("\n[bold cyan]Learning Progress[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Words in catalog", str(progress.total_items))
    table.add_row("Learned in lessons", str(len(set(learned) & {item.id for item in catalog})))
    table.add_row("Studied", str(progress.studied))
    table.add_row(f"Mastered (>{MASTERY_INTERVAL_DAYS} days)", str(progress.mastered))
    table.add_row("Due now", str(progress.due))
    table.add_row("To learn", str(progress.to_learn))
    console.print(table)

    if mistakes:
        console.print("\n[bold]Most Missed[/bold]")
        missed = Table()
        missed.add_column("Word")
        missed.add_column("Mistakes")
        for item_id, count in sorted(mistakes.items(), key=lambda kv: -kv[1])[:5]:
            item = catalog.get(item_id)
            missed.add_row(item.term if item else item_id, str(count))
        console.print(missed)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
