import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()
error_console = Console(stderr=True)


class Colors:
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    INFO = "cyan"
    DIM = "dim"
    GREY = "grey50"
    BOLD = "bold"


def print_error(message: str):
    error_console.print(f"❌ {message}", style=Colors.RED)


def print_warning(message: str):
    error_console.print(f"⚠️  {message}", style=Colors.YELLOW)


def print_info(message: str):
    console.print(message, style=Colors.INFO)


def print_success(message: str):
    console.print(f"✔ {message}", style=Colors.GREEN)


def create_table(title: str | None, columns: list[str]) -> Table:
    """Creates a Rich table with the given title and header columns."""
    table = Table(title=title, show_header=True, header_style=Colors.BOLD)
    for column in columns:
        table.add_column(column)
    return table


def print_table(table: Table):
    console.print(table)


def setup_logging(verbose: bool = False):
    """Routes library log records through a Rich handler on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )
