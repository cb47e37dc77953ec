"""CLI commands using Typer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

if TYPE_CHECKING:
    from layerfs.context import AppContext
    from layerfs.writearea import WriteArea

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from layerfs import __version__
from layerfs.console import ConsoleOutput
from layerfs.context import create_context
from layerfs.errors import LayerFSError, NotFoundError
from layerfs.filesystem import FileSystem
from layerfs.types import ConflictResolution, CopyProgress

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="layerfs",
    help="Layered virtual file system over folders, archives and git trees",
    no_args_is_help=True,
)

mount_app = typer.Typer(help="Manage mounted sources")
write_area_app = typer.Typer(help="Manage the write area")

app.add_typer(mount_app, name="mount")
app.add_typer(write_area_app, name="write-area")

console = Console()
output = ConsoleOutput(console)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"layerfs v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show debug logging")] = False,
) -> None:
    """Layered virtual file system over folders, archives and git trees."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


def _fail(message: str, error: Exception) -> typer.Exit:
    logger.debug("Command failed", exc_info=error)
    output.show_error(message)
    return typer.Exit(1)


def _require_write_area(write_area: WriteArea | None) -> WriteArea:
    if write_area is None:
        output.show_error("No write area configured. Run 'layerfs write-area set LOCATION' first.")
        raise typer.Exit(1)
    return write_area


# ============================================================================
# Mount Commands
# ============================================================================


@mount_app.command("add")
def mount_add(
    physical_path: Annotated[str, typer.Argument(help="Folder, archive, git:<repo> or mem://name")],
    at: Annotated[str, typer.Option("--at", "-a", help="Virtual directory to mount at")] = "/",
    _context=None,
) -> None:
    """Add a source to the end of the mount list."""
    ctx = _context or create_context()
    try:
        spec = ctx.layout.add_mount(physical_path, at)
    except (LayerFSError, ValueError) as e:
        raise _fail(str(e), e) from e
    output.show_success(f"Mounted '{spec.physical_path}' at '{spec.virtual_path}'")


@mount_app.command("remove")
def mount_remove(
    physical_path: Annotated[str, typer.Argument(help="Mounted source")],
    at: Annotated[
        str | None, typer.Option("--at", "-a", help="Only remove the mount at this directory")
    ] = None,
    _context=None,
) -> None:
    """Remove a source from the mount list."""
    ctx = _context or create_context()
    try:
        removed = ctx.layout.remove_mount(physical_path, at)
    except (LayerFSError, ValueError) as e:
        raise _fail(str(e), e) from e
    if removed:
        output.show_success(f"Removed '{physical_path}'")
    else:
        output.show_error(f"'{physical_path}' is not mounted")
        raise typer.Exit(1)


@mount_app.command("list")
def mount_list(_context=None) -> None:
    """List mounted sources in override order."""
    ctx = _context or create_context()
    output.show_mounts(ctx.layout.list_mounts())


# ============================================================================
# Write Area Commands
# ============================================================================


@write_area_app.command("set")
def write_area_set(
    location: Annotated[str, typer.Argument(help="Directory or mem://name")],
    _context=None,
) -> None:
    """Set the location that receives writes."""
    ctx = _context or create_context()
    try:
        spec = ctx.layout.set_write_area(location)
    except (LayerFSError, ValueError) as e:
        raise _fail(str(e), e) from e
    output.show_success(f"Write area set to '{spec.location}'")


@write_area_app.command("clear")
def write_area_clear(_context=None) -> None:
    """Stop using a write area."""
    ctx = _context or create_context()
    ctx.layout.set_write_area(None)
    output.show_success("Write area cleared")


@write_area_app.command("show")
def write_area_show(_context=None) -> None:
    """Show the configured write area."""
    ctx = _context or create_context()
    output.show_write_area(ctx.layout.load().write_area)


# ============================================================================
# Browsing Commands
# ============================================================================


@app.command("ls")
def list_directory(
    path: Annotated[str, typer.Argument(help="Virtual directory")] = "/",
    _context=None,
) -> None:
    """List a directory of the merged view."""
    ctx = _context or create_context()
    try:
        filesystem, _ = ctx.open_filesystem()
        directory = filesystem.get_directory(path)
        if directory is None:
            raise NotFoundError(f"Directory not found: {path}")
    except LayerFSError as e:
        raise _fail(str(e), e) from e
    output.show_directory(directory)


@app.command("find")
def find(
    mask: Annotated[str, typer.Argument(help="Name mask, e.g. '*.txt' or 'cat?.png'")],
    path: Annotated[str, typer.Option("--path", "-p", help="Directory to search")] = "/",
    recursive: Annotated[
        bool, typer.Option("--recursive/--no-recursive", help="Search subdirectories")
    ] = True,
    dirs: Annotated[bool, typer.Option("--dirs", "-d", help="Match directories")] = False,
    _context=None,
) -> None:
    """Find files or directories by name."""
    ctx = _context or create_context()
    try:
        filesystem, _ = ctx.open_filesystem()
        if dirs:
            matches = filesystem.find_directories(path, mask, recursive)
        else:
            matches = filesystem.find_files(path, mask, recursive)
        output.show_matches(matches)
    except LayerFSError as e:
        raise _fail(str(e), e) from e


@app.command("cat")
def cat(
    path: Annotated[str, typer.Argument(help="Virtual file")],
    _context=None,
) -> None:
    """Write a file's bytes to standard output."""
    ctx = _context or create_context()
    try:
        filesystem, _ = ctx.open_filesystem()
        data = filesystem.read_bytes(path)
    except LayerFSError as e:
        raise _fail(str(e), e) from e
    typer.echo(data, nl=False)


# ============================================================================
# Write Commands
# ============================================================================


@app.command("mkdir")
def make_directory(
    path: Annotated[str, typer.Argument(help="Virtual directory to create")],
    _context=None,
) -> None:
    """Create a directory in the write area."""
    ctx = _context or create_context()
    try:
        _, write_area = ctx.open_filesystem()
        _require_write_area(write_area).create_directory(path)
    except LayerFSError as e:
        raise _fail(str(e), e) from e
    output.show_success(f"Created '{path}'")


@app.command("rm")
def remove(
    path: Annotated[str, typer.Argument(help="Virtual file or directory")],
    _context=None,
) -> None:
    """Delete a file or directory through the write area.

    Entries that only exist in read-only mounts are hidden until the view is
    rebuilt; the sources are never modified.
    """
    ctx = _context or create_context()
    try:
        filesystem, write_area = ctx.open_filesystem()
        write_area = _require_write_area(write_area)
        if filesystem.get_file(path) is not None:
            physical = write_area.delete_file(path)
        else:
            physical = write_area.delete_directory(path).physical
    except LayerFSError as e:
        raise _fail(str(e), e) from e
    if physical:
        output.show_success(f"Deleted '{path}'")
    else:
        output.show_warning(f"'{path}' comes from a read-only source and was only hidden")


@app.command("import")
def import_source(
    physical_path: Annotated[str, typer.Argument(help="Source to copy into the write area")],
    no_overwrite: Annotated[
        bool, typer.Option("--no-overwrite", help="Fail if a file already exists")
    ] = False,
    _context=None,
) -> None:
    """Copy every directory and file of a source into the write area."""
    ctx = _context or create_context()
    try:
        _, write_area = ctx.open_filesystem()
        write_area = _require_write_area(write_area)
        source = FileSystem(providers=ctx.providers)
        source.mount(physical_path)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as progress:
            task = progress.add_task(f"Importing {physical_path}...", total=None)

            def report(step: CopyProgress) -> bool:
                progress.update(
                    task,
                    total=step.total_directories + step.total_files,
                    completed=step.directories_copied + step.files_copied,
                )
                return True

            result = write_area.copy_from(source, report, allow_overwrite=not no_overwrite)
    except LayerFSError as e:
        raise _fail(str(e), e) from e

    if result is not None:
        output.show_success(
            f"Imported {result.directory_count} directories and {result.file_count} files"
        )


@app.command("export")
def export(
    path: Annotated[str, typer.Argument(help="Virtual file or directory")],
    destination: Annotated[str, typer.Argument(help="Existing directory on disk")],
    skip_existing: Annotated[
        bool, typer.Option("--skip-existing", help="Keep files that already exist on disk")
    ] = False,
    _context=None,
) -> None:
    """Write a file or directory of the merged view to the local disk."""
    ctx = _context or create_context()
    on_conflict = (lambda source, target: ConflictResolution.SKIP_ALL) if skip_existing else None
    try:
        filesystem, write_area = ctx.open_filesystem()
        write_area = _require_write_area(write_area)
        if filesystem.get_file(path) is not None:
            result = write_area.export_files([path], destination, on_conflict=on_conflict)
        else:
            result = write_area.export_directory(path, destination, on_conflict=on_conflict)
    except LayerFSError as e:
        raise _fail(str(e), e) from e

    if result is not None:
        output.show_success(
            f"Exported {result.directory_count} directories and {result.file_count} files to '{destination}'"
        )
