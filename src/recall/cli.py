"""
Recall: command line for the adaptive scheduler.

Commands:
- recall queue     - Show the priority-ordered study queue
- recall answer    - Record an answer for one item
- recall inspect   - Show scheduling facts for one item
- recall stats     - Show a progress summary
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from config import get_settings

from .progress import ProgressRecord
from .recall_model import LearnerRecallModel
from .scheduler import AdaptiveScheduler, DifficultyLabel, SchedulerConfig
from .session import StudyItem
from .store import JsonProgressStore, ProgressStoreError
from .summary import summarize_progress

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="recall",
    help="Recall: adaptive spaced-repetition scheduler",
    no_args_is_help=True,
)
console = Console()

LABEL_STYLES = {
    DifficultyLabel.EASY: "green",
    DifficultyLabel.MEDIUM: "yellow",
    DifficultyLabel.HARD: "red",
}

StoreOption = typer.Option(None, "--store", "-s", help="Progress JSON file")
LearnerOption = typer.Option(None, "--learner", "-l", help="Learner id")


def _open_store(path: Optional[Path]) -> JsonProgressStore:
    try:
        return JsonProgressStore(path or get_settings().progress_store_path)
    except ProgressStoreError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc


def _load_records(store: JsonProgressStore, learner_id: str) -> list[ProgressRecord]:
    try:
        return store.all_records(learner_id)
    except ProgressStoreError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc


def _load_model(store: JsonProgressStore, learner_id: str) -> Optional[LearnerRecallModel]:
    try:
        return store.load_model(learner_id)
    except ProgressStoreError as exc:
        logger.warning(f"Ignoring recall model for {learner_id}: {exc}")
        return None


def _scheduler() -> AdaptiveScheduler:
    return AdaptiveScheduler(SchedulerConfig.from_settings(get_settings()))


def _model_status(model: Optional[LearnerRecallModel]) -> str:
    if model is None:
        return "no samples yet"
    if not model.is_trained:
        return f"{len(model.samples)}/{model.min_train_samples} samples, using forgetting curve"
    return f"trained on {len(model.samples)} samples"


def styled_label(label: DifficultyLabel) -> str:
    color = LABEL_STYLES[label]
    return f"[{color}]{label.value}[/{color}]"


# =============================================================================
# Commands
# =============================================================================


@app.command()
def queue(
    store_path: Optional[Path] = StoreOption,
    learner: Optional[str] = LearnerOption,
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
) -> None:
    """Show the study queue in priority order."""
    learner_id = learner or get_settings().default_learner_id
    store = _open_store(store_path)
    scheduler = _scheduler()

    records = _load_records(store, learner_id)
    if not records:
        console.print(f"[yellow]No progress recorded for {learner_id}[/yellow]")
        return

    model = _load_model(store, learner_id)

    ordered = scheduler.sort_by_priority([StudyItem(r.item_id, record=r) for r in records])

    table = Table(title=f"Study queue for {learner_id}")
    table.add_column("#", justify="right")
    table.add_column("Item")
    table.add_column("Due", justify="right")
    table.add_column("Level", justify="right")
    table.add_column("Difficulty")
    table.add_column("Forget in", justify="right")
    table.add_column("Priority", justify="right")

    for index, item in enumerate(ordered[:limit], start=1):
        record = item.record
        days = scheduler.days_until_due(record)
        due = "[bold red]due[/bold red]" if days <= 0 else f"{scheduler.due_in_days(record)}d"
        table.add_row(
            str(index),
            item.item_id,
            due,
            str(record.level),
            styled_label(scheduler.difficulty_label(record.difficulty)),
            f"{scheduler.predict_forget_in_days(record, model)}d",
            f"{scheduler.priority_score(record):.1f}",
        )

    console.print(table)


@app.command()
def answer(
    item_id: str = typer.Argument(..., help="Flashcard or question id"),
    correct: Optional[bool] = typer.Option(None, "--correct/--incorrect", help="Answer outcome"),
    response_ms: Optional[int] = typer.Option(None, "--ms", help="Response time in ms"),
    store_path: Optional[Path] = StoreOption,
    learner: Optional[str] = LearnerOption,
) -> None:
    """Record an answer and reschedule the item."""
    if correct is None:
        console.print("[red]Pass --correct or --incorrect[/red]")
        raise typer.Exit(2)

    learner_id = learner or get_settings().default_learner_id
    store = _open_store(store_path)
    scheduler = _scheduler()

    try:
        current = store.get(learner_id, item_id)
        updated = scheduler.advance(current, correct, response_ms, item_id=item_id)
        store.save(learner_id, updated)

        model = _load_model(store, learner_id) or LearnerRecallModel(learner_id)
        model.record_attempt(current, correct, response_ms)
        store.save_model(model)
    except ProgressStoreError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    outcome = "[bold green]correct[/bold green]" if correct else "[bold red]incorrect[/bold red]"
    console.print(
        f"{item_id}: {outcome} -> level {updated.level}, "
        f"next review in {updated.interval_days}d (EF {updated.ease_factor:.2f})"
    )


@app.command()
def inspect(
    item_id: str = typer.Argument(..., help="Flashcard or question id"),
    store_path: Optional[Path] = StoreOption,
    learner: Optional[str] = LearnerOption,
) -> None:
    """Show scheduling facts for one item."""
    learner_id = learner or get_settings().default_learner_id
    store = _open_store(store_path)
    scheduler = _scheduler()

    try:
        record = store.get(learner_id, item_id)
    except ProgressStoreError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    if record is None:
        console.print(f"[yellow]{item_id} has not been studied yet[/yellow]")
        return

    model = _load_model(store, learner_id)

    due_in = scheduler.due_in_days(record)
    lines = [
        f"State:       {record.mastery_state.value} (level {record.level})",
        f"Due:         {'now' if scheduler.is_due(record) else f'in {due_in}d'}",
        f"Difficulty:  {styled_label(scheduler.difficulty_label(record.difficulty))} ({record.difficulty:.2f})",
        f"Forget in:   ~{scheduler.predict_forget_in_days(record, model)}d",
        f"Model:       {_model_status(model)}",
        f"Ease factor: {record.ease_factor:.2f}",
        f"Streak:      {record.repetitions}",
        f"Answers:     {record.correct_count} correct / {record.incorrect_count} incorrect",
    ]
    console.print(Panel("\n".join(lines), title=item_id, title_align="left", border_style="cyan"))


@app.command()
def stats(
    store_path: Optional[Path] = StoreOption,
    learner: Optional[str] = LearnerOption,
) -> None:
    """Show a progress summary."""
    learner_id = learner or get_settings().default_learner_id
    store = _open_store(store_path)
    summary = summarize_progress(_load_records(store, learner_id))

    table = Table(title=f"Progress for {learner_id}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Items", str(summary.total_items))
    for level, count in enumerate(summary.level_counts):
        table.add_row(f"Level {level}", str(count))
    table.add_row("Completion", f"{summary.completion_rate}%")
    table.add_row("Due now", str(summary.due_count))
    table.add_row(
        "Last study",
        summary.last_study_at.strftime("%Y-%m-%d %H:%M") if summary.last_study_at else "-",
    )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
