import logging

import typer
from rich.console import Console

from ckslab.config import load_cluster_config
from ckslab.modules.multipass import get_backend
from ckslab.modules.teardown import teardown

logger = logging.getLogger("ckslab.destroy")

CONFIRM_PROMPT = "This will destroy all cluster VMs. Are you sure? (y/N)"


def destroy_cluster_cmd():
    """Delete the cluster VMs and the generated local files."""
    console = Console()
    console.rule("[bold]CKS Practice Cluster Teardown")

    answer = typer.prompt(CONFIRM_PROMPT, default="", show_default=False)
    if answer.strip() not in ("y", "Y"):
        console.print("Aborted.")
        raise typer.Exit()

    try:
        config = load_cluster_config()
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"❌ Invalid configuration: {e}")
        raise typer.Exit(code=1)

    report = teardown(get_backend(), config, console)

    console.print()
    if report.failed:
        console.print(f"[yellow]Some VMs could not be deleted: {', '.join(report.failed)}[/yellow]")
    else:
        console.print("[green]Cluster destroyed successfully![/green]")
    console.print("To recreate: ckslab create")
