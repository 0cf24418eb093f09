"""
Typer CLI for the cortex-srs study core.

Commands:
    cortex-srs queue     - Preview the next review session queue
    cortex-srs mastery   - Show lesson, module and overall mastery
    cortex-srs quiz      - Take a lesson's adaptive quiz in the terminal

Everything is read-only: catalog and learner snapshot are JSON files and
nothing is written back.

Usage:
    cortex-srs --help
    cortex-srs queue catalog.json --snapshot learner.json
    cortex-srs mastery catalog.json --snapshot learner.json
    cortex-srs quiz catalog.json lesson-1
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from cortex_srs.catalog import Catalog, LearnerSnapshot, load_catalog, load_snapshot
from cortex_srs.errors import CatalogError
from cortex_srs.quiz.adaptive_quiz import AdaptiveQuiz
from cortex_srs.study.mastery import (
    MASTERY_LABELS,
    calculate_lesson_mastery,
    calculate_module_mastery,
    calculate_overall_mastery,
    mastery_to_score,
)
from cortex_srs.study.progress import LessonProgress, record_quiz_attempt
from cortex_srs.study.review_session import (
    ReviewSession,
    ReviewSessionConfig,
    split_session_cards,
)
from cortex_srs.study.scheduler import get_scheduler

app = typer.Typer(
    help="cortex-srs: spaced-repetition queues, adaptive quizzes and mastery",
    no_args_is_help=True,
)

console = Console()

MASTERY_STYLES = {
    "new": "dim",
    "learning": "yellow",
    "familiar": "cyan",
    "proficient": "green",
    "mastered": "bold green",
}


@app.callback()
def main_callback():
    """
    Spaced-repetition study core.

    Reads a content catalog and a learner snapshot (both JSON).
    """
    _configure_logging()


def _configure_logging() -> None:
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


def _load_inputs(catalog_path: Path, snapshot_path: Path | None) -> tuple[Catalog, LearnerSnapshot]:
    """Load catalog and snapshot, exiting with code 1 on bad input."""
    try:
        catalog = load_catalog(catalog_path)
        snapshot = load_snapshot(snapshot_path) if snapshot_path else LearnerSnapshot()
    except CatalogError as e:
        logger.error(str(e))
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    return catalog, snapshot


# ========================================
# QUEUE
# ========================================


@app.command("queue")
def queue_command(
    catalog_path: Path = typer.Argument(..., help="Catalog JSON file"),
    snapshot_path: Path | None = typer.Option(
        None, "--snapshot", "-s", help="Learner snapshot JSON (default: new learner)"
    ),
    lesson: str | None = typer.Option(None, "--lesson", "-l", help="Only cards from this lesson"),
    max_cards: int | None = typer.Option(None, "--max-cards", help="Override session size"),
    max_new: int | None = typer.Option(None, "--max-new", help="Override new-card limit"),
):
    """Preview the next review session queue."""
    catalog, snapshot = _load_inputs(catalog_path, snapshot_path)
    scheduler = get_scheduler()

    cards = catalog.lesson_cards(lesson) if lesson else catalog.cards
    due, new = split_session_cards(cards, snapshot.state_lookup(), scheduler=scheduler)

    defaults = ReviewSessionConfig.from_settings()
    config = ReviewSessionConfig(
        max_cards=max_cards if max_cards is not None else defaults.max_cards,
        max_new_cards=max_new if max_new is not None else defaults.max_new_cards,
        new_card_ratio=defaults.new_card_ratio,
    )
    session = ReviewSession(due, new, config=config, scheduler=scheduler)

    if session.total_cards() == 0:
        rprint("[green]Nothing due. All caught up![/green]")
        return

    table = Table(title=f"Review Queue ({session.total_cards()} cards)", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Card", style="cyan")
    table.add_column("Lesson")
    table.add_column("State")
    table.add_column("Due")
    table.add_column("Prompt", overflow="fold")

    for position, card in enumerate(session.state.queue, start=1):
        state = card.user_state
        table.add_row(
            str(position),
            card.card_id,
            card.review_card.lesson_id,
            "[magenta]new[/magenta]" if card.is_new else state.state.label,
            "-" if card.is_new else state.due.strftime("%Y-%m-%d %H:%M"),
            card.review_card.prompt,
        )

    console.print(table)
    new_count = sum(1 for card in session.state.queue if card.is_new)
    rprint(f"[dim]{session.total_cards() - new_count} review, {new_count} new[/dim]")


# ========================================
# MASTERY
# ========================================


@app.command("mastery")
def mastery_command(
    catalog_path: Path = typer.Argument(..., help="Catalog JSON file"),
    snapshot_path: Path | None = typer.Option(
        None, "--snapshot", "-s", help="Learner snapshot JSON (default: new learner)"
    ),
):
    """Show lesson, module and overall mastery."""
    catalog, snapshot = _load_inputs(catalog_path, snapshot_path)
    scheduler = get_scheduler()
    states = snapshot.state_lookup()
    progress = snapshot.progress_lookup()

    module_masteries = []
    for module in catalog.ordered_modules():
        lesson_masteries = []
        completed = 0
        for lesson in catalog.module_lessons(module.id):
            lesson_cards = catalog.lesson_cards(lesson.id)
            lesson_progress = progress.get(lesson.id)
            if lesson_progress and lesson_progress.status in ("completed", "mastered"):
                completed += 1
            lesson_masteries.append(
                calculate_lesson_mastery(
                    lesson.id,
                    [states[card.id] for card in lesson_cards if card.id in states],
                    lesson_progress,
                    catalog.total_card_count(lesson.id),
                    scheduler=scheduler,
                )
            )
        module_masteries.append(calculate_module_mastery(module.id, lesson_masteries, completed))

    overall = calculate_overall_mastery(module_masteries)

    table = Table(title="Mastery", show_header=True)
    table.add_column("Module / Lesson", style="cyan")
    table.add_column("Level")
    table.add_column("Score", justify="right")
    table.add_column("Review %", justify="right")
    table.add_column("Quiz", justify="right")

    for module in module_masteries:
        table.add_row(
            f"[bold]{module.module_id}[/bold]",
            _level_cell(module.level),
            str(mastery_to_score(module.level)),
            f"{module.overall_review_fraction:.0%}",
            f"{module.average_quiz_score:.0f}",
        )
        for lesson in module.lessons:
            table.add_row(
                f"  {lesson.lesson_id}",
                _level_cell(lesson.level),
                str(mastery_to_score(lesson.level)),
                f"{lesson.state_distribution['review']:.0%}",
                str(lesson.quiz_score) if lesson.quiz_attempts else "-",
            )

    console.print(table)
    rprint(
        f"Overall: {_level_cell(overall.level)} "
        f"({overall.total_modules} modules, {overall.total_lessons} lessons, "
        f"{overall.total_cards} cards, avg stability {overall.average_stability_days:.1f}d)"
    )


def _level_cell(level) -> str:
    style = MASTERY_STYLES.get(level.value, "white")
    return f"[{style}]{MASTERY_LABELS[level]}[/{style}]"


# ========================================
# QUIZ
# ========================================


@app.command("quiz")
def quiz_command(
    catalog_path: Path = typer.Argument(..., help="Catalog JSON file"),
    lesson_id: str = typer.Argument(..., help="Lesson whose quiz to take"),
    snapshot_path: Path | None = typer.Option(
        None, "--snapshot", "-s", help="Learner snapshot JSON (for current progress)"
    ),
):
    """Take a lesson's adaptive quiz in the terminal."""
    catalog, snapshot = _load_inputs(catalog_path, snapshot_path)
    questions = catalog.lesson_questions(lesson_id)
    if not questions:
        rprint(f"[yellow]Lesson {lesson_id} has no quiz questions.[/yellow]")
        raise typer.Exit(code=1)

    quiz = AdaptiveQuiz(questions, lesson_id, related_cards=catalog.card_lookup())

    while quiz.has_next():
        question = quiz.current_question()
        progress = quiz.get_progress()
        label = "Retry " if progress.round else ""
        rprint(f"\n[bold]{label}Question {progress.current}/{progress.total}[/bold]")
        rprint(question.question)
        for index, option in enumerate(question.options, start=1):
            rprint(f"  {index}. {option}")

        answer = typer.prompt("Answer")
        if question.options and answer.strip().isdigit():
            choice = int(answer.strip())
            if 1 <= choice <= len(question.options):
                answer = question.options[choice - 1]

        result = quiz.submit_answer(answer)
        if result.is_correct:
            rprint("[green]Correct![/green]")
        else:
            rprint(f"[red]Incorrect.[/red] Answer: {result.correct_answer}")
            if result.explanation:
                rprint(f"[dim]{result.explanation}[/dim]")
            rprint(f"[yellow]{result.feedback}[/yellow]")

    summary = quiz.get_summary()
    table = Table(title=f"Quiz Summary: {lesson_id}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("First-attempt score", f"{summary.first_attempt_score}%")
    table.add_row("Final score", f"{summary.final_score}%")
    table.add_row("Mastery", summary.mastery.value)
    table.add_row("Retry rounds", str(summary.retry_rounds_completed))
    table.add_row("Passed", "yes" if summary.passed else "no")
    console.print(table)

    if summary.cards_for_relearning:
        rprint(f"Cards to relearn: {', '.join(summary.cards_for_relearning)}")

    previous = snapshot.progress_lookup().get(lesson_id) or LessonProgress(lesson_id=lesson_id)
    updated = record_quiz_attempt(previous, summary)
    rprint(
        f"[dim]Lesson status: {previous.status} -> {updated.status}, "
        f"best score {updated.best_quiz_score}[/dim]"
    )


if __name__ == "__main__":
    app()
