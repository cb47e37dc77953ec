"""Rich output helpers for the command line."""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.table import Table

from layerfs.config import MountSpec, WriteAreaSpec
from layerfs.tree import VirtualDirectory, VirtualFile


def format_size(size: int) -> str:
    """Human readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _source(entry: VirtualDirectory | VirtualFile) -> str:
    mount_point = entry.mount_point
    return mount_point.physical_path if mount_point is not None else ""


class ConsoleOutput:
    """Non-interactive output for layerfs commands."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def show_mounts(self, mounts: list[MountSpec]) -> None:
        """Display configured mounts in override order."""
        if not mounts:
            self.console.print("[yellow]No mounts configured[/yellow]")
            return

        table = Table(title="Mounts (last wins)")
        table.add_column("#", justify="right")
        table.add_column("Physical path", style="cyan")
        table.add_column("Virtual path")
        for index, mount in enumerate(mounts, start=1):
            table.add_row(str(index), mount.physical_path, mount.virtual_path)
        self.console.print(table)

    def show_write_area(self, write_area: WriteAreaSpec | None) -> None:
        if write_area is None:
            self.console.print("[yellow]No write area configured[/yellow]")
            return
        self.console.print(f"Write area: [cyan]{write_area.location}[/cyan]")

    def show_directory(self, directory: VirtualDirectory) -> None:
        """Display the directories and files of one directory."""
        if directory.is_empty():
            self.console.print(f"[yellow]{directory.full_path} is empty[/yellow]")
            return

        table = Table(title=directory.full_path)
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Modified")
        table.add_column("Source")
        for child in sorted(directory.directories, key=lambda d: d.name.casefold()):
            table.add_row(f"[bold]{child.name}/[/bold]", "", "", _source(child))
        for file in sorted(directory.files, key=lambda f: f.name.casefold()):
            table.add_row(
                file.name,
                format_size(file.size),
                file.modified_date.strftime("%Y-%m-%d %H:%M"),
                _source(file),
            )
        self.console.print(table)

    def show_matches(self, entries: Iterable[VirtualDirectory | VirtualFile]) -> int:
        """Print one full path per match.

        Returns:
            Number of matches printed.
        """
        count = 0
        for entry in entries:
            self.console.print(entry.full_path, highlight=False)
            count += 1
        if count == 0:
            self.console.print("[yellow]No matches[/yellow]")
        return count

    def show_success(self, message: str) -> None:
        """Display success message.

        Args:
            message: Message to display.
        """
        self.console.print(f"[green]✓[/green] {message}")

    def show_error(self, message: str) -> None:
        """Display error message.

        Args:
            message: Message to display.
        """
        self.console.print(f"[red]✗[/red] {message}")

    def show_warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def show_info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")
