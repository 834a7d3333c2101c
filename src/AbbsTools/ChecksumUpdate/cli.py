# === NAVMAP v1 ===
# {
#   "module": "AbbsTools.ChecksumUpdate.cli",
#   "purpose": "Typer CLI that refreshes CHKSUMS of packages in an ABBS tree",
#   "sections": [
#     {"id": "process-spec", "name": "process_spec", "anchor": "function-process-spec", "kind": "function"},
#     {"id": "update", "name": "update", "anchor": "function-update", "kind": "function"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for refreshing package checksums.

Usage:
    abbs-update-checksum [--tree DIR] [--threads N] [--dry-run] PACKAGE...

Exit codes:
    0  every spec was processed (and written unless ``--dry-run``)
    1  ``--dry-run`` was given and at least one spec would change
    2  a spec could not be processed; that file is left untouched
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .core import RefreshResult, refresh
from .errors import ChecksumUpdateError
from .logging_utils import retarget_console_handlers, setup_logging
from .progress import RichProgressSink
from .settings import ChecksumUpdateConfiguration, build_config
from .tree import find_spec_files, find_tree

__all__ = ["app", "main", "process_spec"]

logger = logging.getLogger(__name__)

EXIT_CHANGED = 1
EXIT_FAILED = 2

_console = Console(stderr=True)

app = typer.Typer(
    name="abbs-update-checksum",
    help="Refresh CHKSUMS of ABBS packages from their SRCS",
    add_completion=False,
)


def process_spec(
    spec: Path,
    config: ChecksumUpdateConfiguration,
    *,
    dry_run: bool = False,
    show_progress: bool = True,
) -> RefreshResult:
    """Refresh one spec file; write it back unless ``dry_run``."""

    original = spec.read_text(encoding="utf-8")
    if show_progress:
        # Logs go through rich's stderr proxy while the bars are live.
        with RichProgressSink(console=_console) as sink, retarget_console_handlers():
            result = refresh(original, sink, config=config)
    else:
        result = refresh(original, config=config)

    logger.info("%s is changed: %s", spec, result.changed, extra={"stage": "cli"})
    if dry_run:
        typer.echo(result.text, nl=False)
    elif result.text != original:
        spec.write_text(result.text, encoding="utf-8")
    return result


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"abbs-update-checksum {__version__}")
        raise typer.Exit()


@app.command()
def update(
    packages: List[str] = typer.Argument(..., help="Package names to refresh"),
    tree: Path = typer.Option(Path("."), "--tree", "-t", help="Directory inside the ABBS tree"),
    threads: Optional[int] = typer.Option(
        None, "--threads", min=1, help="Maximum concurrent downloads"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-d", help="Print the new spec instead of writing it"
    ),
    lenient: bool = typer.Option(
        False, "--lenient", help="Fall back to naive KEY=value parsing on parse errors"
    ),
    append_missing: bool = typer.Option(
        False, "--append-missing", help="Append checksum fields that the spec lacks"
    ),
    no_progress: bool = typer.Option(False, "--no-progress", help="Disable progress bars"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Write JSON logs here"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    """Refresh the checksums of PACKAGES in the ABBS tree."""

    try:
        config = build_config(
            max_concurrency=threads,
            allow_lenient_parse=lenient or None,
            append_missing_fields=append_missing or None,
        )
        if log_level is not None:
            config.logging.level = log_level
        if log_dir is not None:
            config.logging.log_dir = log_dir
    except (ChecksumUpdateError, ValueError) as exc:
        _console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_FAILED) from exc

    setup_logging(
        level=config.logging.level,
        log_dir=config.logging.log_dir,
        max_log_size_mb=config.logging.max_log_size_mb,
        backup_count=config.logging.backup_count,
    )

    try:
        root = find_tree(tree)
    except ChecksumUpdateError as exc:
        _console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_FAILED) from exc

    lookup = find_spec_files(root, packages)
    for name in lookup.missing:
        _console.print(f"[yellow]Warning:[/yellow] package {name} not found in {root}")

    changed = False
    failed = False
    for spec in lookup.specs:
        try:
            result = process_spec(spec, config, dry_run=dry_run, show_progress=not no_progress)
        except (ChecksumUpdateError, OSError) as exc:
            logger.error("failed to update %s: %s", spec, exc, extra={"stage": "cli"})
            _console.print(f"[red]Error:[/red] {spec}: {escape(str(exc))}")
            failed = True
            continue
        changed = changed or result.changed

    if failed:
        raise typer.Exit(code=EXIT_FAILED)
    if changed and dry_run:
        raise typer.Exit(code=EXIT_CHANGED)


def main() -> None:
    """Console-script entry point."""

    app()


if __name__ == "__main__":
    main()
