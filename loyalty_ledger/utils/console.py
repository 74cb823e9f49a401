import sys
from typing import List, Optional

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

_console = Console()


def is_interactive() -> bool:
    """Check if we are in an interactive TTY session."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def print_step(title: str) -> None:
    """Print a step header."""
    _console.rule(f"[bold blue]{title}[/]")


def print_success(message: str) -> None:
    _console.print(f"[bold green]SUCCESS:[/] {message}")


def print_warning(message: str) -> None:
    _console.print(f"[bold yellow]WARNING:[/] {message}")


def print_error(message: str, exit_code: Optional[int] = None) -> None:
    """Print an error message and optionally exit."""
    _console.print(f"[bold red]ERROR:[/] {message}")
    if exit_code is not None:
        sys.exit(exit_code)


def print_table(title: str, columns: List[str], rows: List[List[str]]) -> None:
    """Print a table; an empty one prints a placeholder row."""
    table = Table(title=title)
    for col in columns:
        table.add_column(col)
    if not rows:
        table.add_row(*(["(no data)"] + [""] * (len(columns) - 1)))
    for row in rows:
        table.add_row(*row)
    _console.print(table)


def ask_confirm(prompt_text: str, default: bool = False) -> bool:
    """Ask for yes/no confirmation. Non-interactive sessions get the default."""
    if not is_interactive():
        return default
    return bool(Confirm.ask(prompt_text, default=default))
