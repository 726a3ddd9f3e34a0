import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from rich.console import Console

from ckslab.config import ClusterConfig
from ckslab.utils import remove_file

logger = logging.getLogger("ckslab.teardown")


@dataclass
class TeardownReport:
    deleted: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    removed_files: List[Path] = field(default_factory=list)
    purged: bool = False


def teardown(backend, config: ClusterConfig, console: Console) -> TeardownReport:
    """Delete the cluster VMs and the files generated on the host.

    Every step is best-effort: errors are logged and the next step runs, so
    repeating a teardown is always safe.
    """
    report = TeardownReport()

    if backend.available():
        for node in config.nodes:
            _delete_node(backend, node.name, console, report)

        console.print("[yellow]Purging deleted VMs...[/yellow]")
        try:
            backend.purge()
            report.purged = True
        except subprocess.CalledProcessError as e:
            logger.warning(f"⚠️  multipass purge failed (exit code {e.returncode})")
    else:
        logger.warning("⚠️  Multipass is not installed; skipping VM deletion")

    console.print("[yellow]Cleaning up local files...[/yellow]")
    for path in config.generated_files:
        try:
            if remove_file(path):
                console.print(f"  Removed {path.name}")
                report.removed_files.append(path)
        except OSError as e:
            logger.warning(f"⚠️  Could not remove {path}: {e}")

    return report


def _delete_node(backend, name: str, console: Console, report: TeardownReport) -> None:
    if not backend.exists(name):
        console.print(f"  [cyan]{name}[/cyan]: [yellow]not found, skipping[/yellow]")
        report.missing.append(name)
        return

    console.print(f"  [cyan]{name}[/cyan]: deleting...")
    try:
        backend.delete(name)
    except subprocess.CalledProcessError as e:
        logger.warning(f"⚠️  {name} could not be deleted (exit code {e.returncode})")
        report.failed.append(name)
        return
    console.print(f"  [cyan]{name}[/cyan]: [green]✓ deleted[/green]")
    report.deleted.append(name)
