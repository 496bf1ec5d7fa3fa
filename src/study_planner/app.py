"""Interactive CLI application."""
import logging
from datetime import date, timedelta
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, FloatPrompt, IntPrompt, Prompt
from rich.table import Table

from study_planner.config import (
    StudyConfig, get_day_exceptions, get_study_config, import_config_file,
    remove_day_exception, save_study_config, set_day_exception,
)
from study_planner.db import DEFAULT_DB_PATH, add_manual_commitment, get_session, init_db
from study_planner.errors import InfeasiblePlanError, PlannerError
from study_planner.importer import load_items
from study_planner.log import configure_logging
from study_planner.models import ConflictAction, PerformanceData, Scenario, SessionType
from study_planner.planner import (
    check_day_conflict, commit_distribution, complete_session, detect_topic_conflicts,
    preview_distribution, sessions_by_date,
)
from study_planner.repetition import profile_info

console = Console()

SCENARIO_COLORS = {
    Scenario.IMPOSSIBLE: "red",
    Scenario.TIGHT: "yellow",
    Scenario.NORMAL: "green",
    Scenario.RELAXED: "cyan",
}


def show_welcome():
    console.print(Panel(
        "[bold]Study Planner[/bold]\n[dim]Capacity scheduling + spaced repetition[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("config", "Weekly hours and review profile"),
        ("exception", "Set or clear hours for one day"),
        ("commitment", "Add an ad-hoc study item"),
        ("preview", "Preview a plan from an items file"),
        ("commit", "Create a plan from an items file"),
        ("agenda", "Upcoming sessions"),
        ("complete", "Complete a session"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def ask_date(prompt: str, default: date) -> date:
    while True:
        raw = Prompt.ask(prompt, default=default.isoformat())
        try:
            return date.fromisoformat(raw)
        except ValueError:
            console.print("[red]Use the YYYY-MM-DD format.[/red]")


def ask_score(prompt: str) -> float | None:
    raw = Prompt.ask(f"{prompt} [dim](0-4, blank to skip)[/dim]", default="")
    return float(raw) if raw.strip() else None


def show_distribution(result) -> None:
    color = SCENARIO_COLORS[result.scenario]
    utilization = "n/a" if result.utilization_percentage is None else f"{result.utilization_percentage}%"
    body = (
        f"Required: [bold]{result.total_minutes / 60:.1f}h[/bold]  |  "
        f"Capacity: [bold]{result.available_minutes / 60:.1f}h[/bold]  |  "
        f"Utilization: [bold]{utilization}[/bold]"
    )
    if result.warnings:
        body += "\n" + "\n".join(f"[{color}]{w}[/{color}]" for w in result.warnings)
    console.print(Panel(body, title=f"Scenario: {result.scenario.value}", border_style=color))

    table = Table(title="Sessions")
    table.add_column("Date")
    table.add_column("Session")
    table.add_column("Minutes", justify="right")
    for s in sorted(result.sessions, key=lambda s: (s.date, s.title)):
        table.add_row(s.date.isoformat(), s.title, str(s.duration_minutes))
    console.print(table)

    if result.conflicts:
        conflicts = Table(title="Overloaded Days", border_style="red")
        conflicts.add_column("Date")
        conflicts.add_column("Required", justify="right")
        conflicts.add_column("Capacity", justify="right")
        conflicts.add_column("Overload", justify="right")
        for c in result.conflicts:
            conflicts.add_row(
                c.date.isoformat(), str(c.required_minutes), str(c.available_minutes),
                f"[red]+{c.overload_percentage}%[/red]",
            )
        console.print(conflicts)

    for failure in result.skipped_items:
        console.print(f"[yellow]Not placed:[/yellow] {failure.item.title} ({failure.reason})")


def ask_plan_inputs():
    file_path = Prompt.ask("Items file (YAML or JSON)")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return None
    items = load_items(file_path)
    start = ask_date("Start date", date.today())
    end = ask_date("End date", start + timedelta(days=13))
    if end < start:
        console.print("[red]End date is before the start date.[/red]")
        return None
    return items, start, end


def resolve_topic_conflicts(report) -> list:
    if report.unrelated_commitments:
        console.print(f"[dim]{len(report.unrelated_commitments)} other ad-hoc items stay as they are.[/dim]")
    for conflict in report.conflicts:
        dates = ", ".join(c.date.isoformat() for c in conflict.existing)
        console.print(f"[yellow]{conflict.title}[/yellow] is already scheduled on {dates}")
        choice = Prompt.ask(
            "Action", choices=[a.value for a in ConflictAction], default=ConflictAction.LINK.value,
        )
        conflict.action = ConflictAction(choice)
    return report.conflicts


def cmd_config(db_path: str):
    config = get_study_config(db_path)
    info = profile_info(config.aggressiveness)
    console.print(Panel(
        f"Weekdays: [bold]{config.weekday_hours}h[/bold]  |  Weekends: [bold]{config.weekend_hours}h[/bold]\n"
        f"Saturday: {'yes' if config.study_saturday else 'no'}  |  Sunday: {'yes' if config.study_sunday else 'no'}\n"
        f"Reviews: [bold]{info['name']}[/bold] ({info['retention']} retention, {info['best_for'].lower()})",
        title="Study Configuration", border_style="blue",
    ))
    mode = Prompt.ask("Change", choices=["no", "edit", "file"], default="no")
    if mode == "file":
        config = import_config_file(db_path, Prompt.ask("YAML file"))
        console.print("[green]Configuration imported.[/green]")
    elif mode == "edit":
        config = StudyConfig(
            weekday_hours=FloatPrompt.ask("Weekday hours", default=config.weekday_hours),
            weekend_hours=FloatPrompt.ask("Weekend hours", default=config.weekend_hours),
            study_saturday=Confirm.ask("Study on Saturdays?", default=config.study_saturday),
            study_sunday=Confirm.ask("Study on Sundays?", default=config.study_sunday),
            aggressiveness=Prompt.ask(
                "Review profile", choices=["aggressive", "balanced", "spaced"], default=config.aggressiveness,
            ),
        )
        save_study_config(db_path, config)
        console.print("[green]Configuration saved.[/green]")


def cmd_exception(db_path: str):
    for day, e in get_day_exceptions(db_path).items():
        console.print(f"  {day.isoformat()}  {e['hours']}h  [dim]{e['reason'] or ''}[/dim]")
    day = ask_date("Date", date.today())
    if Prompt.ask("Action", choices=["set", "clear"], default="set") == "clear":
        remove_day_exception(db_path, day)
        console.print("[green]Exception removed.[/green]")
        return
    hours = FloatPrompt.ask("Hours available")
    reason = Prompt.ask("Reason", default="") or None
    set_day_exception(db_path, day, hours, reason)
    console.print("[green]Exception saved.[/green]")


def cmd_commitment(db_path: str):
    title = Prompt.ask("Title")
    day = ask_date("Date", date.today())
    minutes = IntPrompt.ask("Minutes", default=60)
    info = check_day_conflict(db_path, day, minutes)
    if info.has_conflict:
        console.print(
            f"[yellow]This overloads {day.isoformat()} by {info.overload_hours:.1f}h "
            f"(consider {info.suggested_availability}h for that day).[/yellow]"
        )
        if not Confirm.ask("Add anyway?", default=False):
            return
    topic_id = Prompt.ask("Topic id", default="") or None
    subtopic_id = Prompt.ask("Subtopic id", default="") or None
    new_id = add_manual_commitment(db_path, day, minutes, title, topic_id, subtopic_id)
    console.print(f"[green]Added item #{new_id}.[/green]")


def cmd_preview(db_path: str):
    inputs = ask_plan_inputs()
    if inputs is None:
        return
    result = preview_distribution(db_path, *inputs)
    show_distribution(result)


def cmd_commit(db_path: str):
    inputs = ask_plan_inputs()
    if inputs is None:
        return
    items, start, end = inputs
    title = Prompt.ask("Plan title", default="Study plan")
    conflicts = resolve_topic_conflicts(detect_topic_conflicts(db_path, items, start, end))
    try:
        result = commit_distribution(db_path, items, start, end, title=title, topic_conflicts=conflicts)
    except InfeasiblePlanError as e:
        console.print(f"[red]{e}[/red]")
        if e.result is not None:
            show_distribution(e.result)
        return
    show_distribution(result)
    console.print(f"[green]Plan #{result.plan_id} created with {len(result.sessions)} sessions.[/green]")


def cmd_agenda(db_path: str):
    days = IntPrompt.ask("Days ahead", default=7)
    start = date.today()
    agenda = sessions_by_date(db_path, start, start + timedelta(days=days))
    if not agenda:
        console.print("[yellow]Nothing scheduled.[/yellow]")
        return
    table = Table(title="Agenda")
    table.add_column("ID", justify="right")
    table.add_column("Date")
    table.add_column("Session")
    table.add_column("Minutes", justify="right")
    table.add_column("Status")
    for day, sessions in agenda.items():
        for s in sessions:
            status = "[green]Done[/green]" if s.completed else (f"[red]{s.notes}[/red]" if s.notes else "")
            table.add_row(str(s.id), day.isoformat(), s.title, str(s.duration_minutes), status)
    console.print(table)


def cmd_complete(db_path: str):
    session_id = IntPrompt.ask("Session ID")
    session = get_session(db_path, session_id)
    if session is None:
        console.print(f"[red]No session #{session_id}.[/red]")
        return
    console.print(f"[bold]{session.title}[/bold] ({session.date.isoformat()})")
    performance = PerformanceData()
    if session.session_type == SessionType.INITIAL_PART_1:
        performance.time_score = ask_score("Time score")
        performance.flashcard_score = ask_score("Flashcards score")
        performance.completion_score = ask_score("Completion score")
    elif session.session_type == SessionType.INITIAL_PART_2:
        performance.questions_score = ask_score("Questions score")
    elif session.session_type == SessionType.REVISION:
        performance.final_rating = ask_score("Overall rating")
    result = complete_session(db_path, session_id, performance)
    console.print("[green]Session completed.[/green]")
    if result.chain_error:
        console.print(f"[yellow]No follow-up scheduled: {result.chain_error}[/yellow]")
    elif result.next_session is not None:
        nxt = result.next_session
        console.print(
            f"Next: [cyan]{nxt.title}[/cyan] on [bold]{nxt.date.isoformat()}[/bold] "
            f"({nxt.duration_minutes} min)"
        )


def main():
    db_path = DEFAULT_DB_PATH
    configure_logging(logging.WARNING)
    init_db(db_path)
    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="agenda").strip().lower()
        try:
            if choice == "config":
                cmd_config(db_path)
            elif choice == "exception":
                cmd_exception(db_path)
            elif choice == "commitment":
                cmd_commitment(db_path)
            elif choice == "preview":
                cmd_preview(db_path)
            elif choice == "commit":
                cmd_commit(db_path)
            elif choice == "agenda":
                cmd_agenda(db_path)
            elif choice == "complete":
                cmd_complete(db_path)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Happy studying![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except (PlannerError, ValueError) as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
