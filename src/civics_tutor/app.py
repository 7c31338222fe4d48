"""Interactive CLI application."""
import asyncio
import sys
from pathlib import Path

from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt, IntPrompt
from rich.table import Table

from civics_tutor.bank import load_questions, question_type_counts
from civics_tutor.dashboard import (
    calc_readiness_score, category_accuracy, get_readiness_color, get_readiness_label,
    overall_accuracy, progress_summary,
)
from civics_tutor.db import init_db, DEFAULT_DB_PATH
from civics_tutor.importer import QuestionImportError, import_questions
from civics_tutor.models import Category, PresentationMode, Question
from civics_tutor.selection import SessionMode
from civics_tutor.session import SessionController
from civics_tutor.settings import (
    get_bank_path, get_log_level, get_review_size, get_session_size, set_setting,
)
from civics_tutor.store import ProgressStore, SQLiteKeyValueStore

console = Console()

EXIT_WORDS = ("q", "menu")

CATEGORY_TITLES = {
    Category.GOVERNMENT: "American Government",
    Category.HISTORY: "American History",
    Category.SYMBOLS_HOLIDAYS: "Symbols and Holidays",
}


class SessionExitRequested(Exception):
    """User typed q/menu in the middle of a session."""


def session_prompt(prompt: str, **kwargs) -> str:
    value = Prompt.ask(prompt, **kwargs)
    if value.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return value


def configure_logging(level: str = "WARNING") -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<level>{message}</level>",
    )


def load_bank(db_path: str) -> list[Question]:
    """Custom bank chosen with `import`, falling back to the bundled questions."""
    custom = get_bank_path(db_path)
    if custom:
        try:
            return import_questions(custom)
        except QuestionImportError as e:
            logger.warning(f"Custom bank unavailable, using bundled questions: {e}")
    return load_questions()


def show_welcome():
    console.print(Panel(
        "[bold]U.S. Civics Test[/bold]\n[dim]Practice and spaced review[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("category", "Practice one category"),
        ("random", "Random questions from the whole bank"),
        ("types", "Practice by question type (who, what, when...)"),
        ("review", "Spaced-repetition review"),
        ("incorrect", "Retry questions you missed"),
        ("marked", "Practice marked questions"),
        ("dashboard", "Readiness score + progress"),
        ("import", "Use a custom question bank"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_question(controller: SessionController) -> None:
    question = controller.current_question
    progress = controller.progress
    title = f"Question {progress.current}/{progress.total}"
    if controller.mode is SessionMode.SPACED_REPETITION:
        title += f" · {controller.srs_status_message(question.id)}"
    if controller.is_marked(question.id):
        title += " · marked"
    body = question.text()
    if controller.current_mode is PresentationMode.AUDIO_CUE:
        body = f"[dim](listen)[/dim] {body}"
    if question.required_quantity > 1:
        body += f"\n[dim]Give {question.required_quantity} answers.[/dim]"
    console.print(Panel(body, title=title, border_style="cyan"))


async def run_practice_session(controller: SessionController) -> SessionController:
    await controller.start()
    if controller.is_empty:
        console.print("[yellow]Nothing to practice here yet![/yellow]")
        return controller

    console.print(f"\n[bold]Practice[/bold]: {controller.progress.total} questions [dim](q to stop)[/dim]\n")
    try:
        while not controller.is_complete:
            show_question(controller)
            question = controller.current_question
            answer = session_prompt("Your answer")
            if await controller.handle_answer(answer):
                console.print("[green]Correct![/green]")
            else:
                console.print(f"[red]Incorrect.[/red] Accepted: [green]{question.answer}[/green]")
            choice = session_prompt("[dim]Enter for next, m to mark/unmark[/dim]", default="")
            if choice.strip().lower() == "m":
                marked = await controller.toggle_marked(question.id)
                console.print("[cyan]Marked.[/cyan]" if marked else "[dim]Unmarked.[/dim]")
            controller.handle_next()
            console.print()
    except SessionExitRequested:
        console.print("[dim]Session stopped.[/dim]")

    stats = controller.stats
    console.print(
        f"[bold]Score: {stats.correct}/{stats.correct + stats.incorrect} ({stats.score:.0f}%)[/bold]\n"
    )
    return controller


def run_session(db_path: str, questions: list[Question], mode: SessionMode, **options) -> SessionController:
    store = ProgressStore(SQLiteKeyValueStore(db_path))
    controller = SessionController(questions, store, mode=mode, **options)
    return asyncio.run(run_practice_session(controller))


def cmd_category(db_path: str, questions: list[Question]):
    for i, category in enumerate(Category, 1):
        console.print(f"  [cyan]{i}[/cyan]) {CATEGORY_TITLES[category]}")
    choice = IntPrompt.ask("Select category", choices=[str(i) for i in range(1, len(Category) + 1)])
    category = list(Category)[choice - 1]
    run_session(db_path, questions, SessionMode.CATEGORY, category=category)


def cmd_random(db_path: str, questions: list[Question]):
    count = IntPrompt.ask("Number of questions", default=get_session_size(db_path))
    run_session(db_path, questions, SessionMode.RANDOM, count=count)


def cmd_types(db_path: str, questions: list[Question]):
    counts = question_type_counts(questions)
    types = list(counts)
    table = Table(title="Question Types")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Questions", justify="right")
    for i, question_type in enumerate(types, 1):
        table.add_row(str(i), question_type.value.replace("_", " "), str(counts[question_type]))
    console.print(table)
    choice = IntPrompt.ask("Select type", choices=[str(i) for i in range(1, len(types) + 1)])
    run_session(
        db_path, questions, SessionMode.QUESTION_TYPE,
        question_type=types[choice - 1], count=get_session_size(db_path),
    )


def cmd_review(db_path: str, questions: list[Question]):
    run_session(db_path, questions, SessionMode.SPACED_REPETITION, count=get_review_size(db_path))


def cmd_incorrect(db_path: str, questions: list[Question]):
    run_session(db_path, questions, SessionMode.INCORRECT)


def cmd_marked(db_path: str, questions: list[Question]):
    run_session(db_path, questions, SessionMode.MARKED)


async def _load_progress(store: ProgressStore) -> tuple:
    return (
        await store.load_answer_log(),
        await store.load_srs(),
        await store.load_incorrect(),
        await store.load_marked(),
    )


def cmd_dashboard(db_path: str, questions: list[Question]):
    store = ProgressStore(SQLiteKeyValueStore(db_path))
    answer_log, srs_map, incorrect, marked = asyncio.run(_load_progress(store))
    summary = progress_summary(questions, srs_map, incorrect, marked)
    score = calc_readiness_score(answer_log, summary)
    label = get_readiness_label(score)
    color = get_readiness_color(score)

    console.print(Panel(f"[bold]{summary['total']} questions in bank[/bold]", title="Civics Readiness Dashboard", border_style="blue"))

    bar_filled = int(score / 5)
    bar_empty = 20 - bar_filled
    bar = f"[{color}]{'█' * bar_filled}{'░' * bar_empty}[/{color}]"
    console.print(f"\n  Overall Readiness: [bold]{score}%[/bold] {bar} [{color}]{label}[/{color}]\n")

    accuracy = category_accuracy(answer_log)
    table = Table(title="Category Breakdown")
    table.add_column("Category", style="cyan")
    table.add_column("Accuracy", justify="right")
    table.add_column("Status")
    for category in Category:
        if category.value not in accuracy:
            table.add_row(CATEGORY_TITLES[category], "-", "[dim]not practiced[/dim]")
            continue
        pct = accuracy[category.value]
        pct_color = get_readiness_color(pct)
        table.add_row(CATEGORY_TITLES[category], f"{pct}%", f"[{pct_color}]{get_readiness_label(pct)}[/{pct_color}]")
    console.print(table)

    console.print(f"\n  Answers: [bold]{len(answer_log)}[/bold]  |  "
                  f"Accuracy: [bold]{overall_accuracy(answer_log)}%[/bold]  |  "
                  f"Due: [bold]{summary['due']}[/bold]  |  "
                  f"New: [bold]{summary['new']}[/bold]  |  "
                  f"Mastered: [bold]{summary['mastered']}[/bold]  |  "
                  f"Incorrect: [bold]{summary['incorrect']}[/bold]  |  "
                  f"Marked: [bold]{summary['marked']}[/bold]")

    if accuracy:
        weakest = min(accuracy, key=accuracy.get)
        if accuracy[weakest] < 60:
            console.print(f"\n  [yellow]Recommendation: Focus on {CATEGORY_TITLES[Category(weakest)]}[/yellow]")


def cmd_import(db_path: str) -> list[Question] | None:
    file_path = Prompt.ask("File path (.json, .yaml, .csv)")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return None
    try:
        questions = import_questions(file_path)
    except QuestionImportError as e:
        console.print(f"[red]Import failed: {e}[/red]")
        return None
    set_setting(db_path, "bank_path", str(Path(file_path).resolve()))
    console.print(f"[green]Imported {len(questions)} questions from {Path(file_path).name}[/green]")
    return questions


def main():
    db_path = DEFAULT_DB_PATH
    init_db(db_path)
    configure_logging(get_log_level(db_path))
    questions = load_bank(db_path)

    show_welcome()

    commands = {
        "category": cmd_category,
        "random": cmd_random,
        "types": cmd_types,
        "review": cmd_review,
        "incorrect": cmd_incorrect,
        "marked": cmd_marked,
        "dashboard": cmd_dashboard,
    }
    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="review").strip().lower()
        try:
            if choice in commands:
                commands[choice](db_path, questions)
            elif choice == "import":
                questions = cmd_import(db_path) or questions
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Good luck on your interview![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.opt(exception=e).debug("Command failed")
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
