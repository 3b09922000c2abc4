"""Console output for the CLI.

All CLI output goes through the Console class, a thin wrapper over rich.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from rich.console import Console as RichConsole
from rich.table import Table

from kiae.domain.image.model.value import AvailabilityMode

_MODE_STYLES = {
    AvailabilityMode.AVAILABLE: "green",
    AvailabilityMode.UNKNOWN: "dim",
    AvailabilityMode.BAD_IMAGE_NAME: "magenta",
}


@dataclass(frozen=True)
class CheckRow:
    """One line of `kiae check` output."""

    image: str
    mode: AvailabilityMode
    attempts: int
    error: str = ""


class Console:
    """CLI output manager wrapping rich."""

    def __init__(self, *, force_terminal: bool | None = None) -> None:
        self._console = RichConsole(force_terminal=force_terminal, stderr=False)
        self._err_console = RichConsole(force_terminal=force_terminal, stderr=True)

    def success(self, message: str) -> None:
        self._console.print(f"[green]✓[/green] {message}")

    def error(self, message: str, *, hint: str | None = None) -> None:
        """Print an error message to stderr."""
        self._err_console.print(f"[red]✗[/red] {message}")
        if hint:
            self._err_console.print(f"  [dim]{hint}[/dim]")

    def check_results(self, rows: Iterable[CheckRow]) -> None:
        """Print one row per checked image, colored by availability."""
        table = Table(show_header=True, header_style="bold")
        table.add_column("Image", overflow="fold")
        table.add_column("Availability", no_wrap=True)
        table.add_column("Attempts", justify="right")
        table.add_column("Error", overflow="fold")
        for row in rows:
            style = _MODE_STYLES.get(row.mode, "red")
            table.add_row(
                row.image,
                f"[{style}]{row.mode.label}[/{style}]",
                str(row.attempts),
                row.error,
            )
        self._console.print(table)


_default: Console | None = None


def get_console() -> Console:
    """Get the default console instance."""
    global _default
    if _default is None:
        _default = Console()
    return _default
