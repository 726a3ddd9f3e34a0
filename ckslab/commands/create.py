import logging
from typing import Optional

import typer
from rich.console import Console

from ckslab.config import ClusterConfig, load_cluster_config
from ckslab.modules.errors import ClusterError
from ckslab.modules.models import ClusterReport
from ckslab.modules.multipass import get_backend
from ckslab.modules.orchestrator import ClusterBootstrap
from ckslab.modules.tools import TOOLS

logger = logging.getLogger("ckslab.create")


def create_cluster_cmd(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Stream cloud-init and kubeadm logs instead of summarizing"),
    k8s_version: Optional[str] = typer.Option(None, "--k8s-version", "-k", help="Kubernetes MAJOR.MINOR to install (default: 1.35)"),
):
    """Create the 3-node CKS practice cluster."""
    try:
        config = load_cluster_config(k8s_version=k8s_version, verbose=verbose)
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"❌ Invalid configuration: {e}")
        raise typer.Exit(code=1)

    console = Console()
    console.rule("[bold]CKS Practice Cluster Setup")
    console.print(f"  Kubernetes v{config.k8s_version}" + ("  (verbose mode)" if config.verbose else ""))

    backend = get_backend()
    try:
        report = ClusterBootstrap(config, backend=backend, console=console).run()
    except ClusterError as e:
        logger.error(f"❌ {e}")
        logger.debug("Cluster creation failed", exc_info=True)
        console.print("[yellow]Clean up with:[/yellow] ckslab destroy")
        raise typer.Exit(code=1)

    print_summary(console, config, report, backend)


def print_summary(console: Console, config: ClusterConfig, report: ClusterReport, backend) -> None:
    console.print()
    console.rule("[green]CKS Practice Cluster Ready!" if report.complete else "[yellow]CKS Practice Cluster Created (with warnings)")
    console.print()

    result = backend.exec(config.control_node, ["kubectl", "get", "nodes", "-o", "wide"], check=False)
    if result.returncode == 0:
        console.print(result.stdout, markup=False, highlight=False)

    for join in report.failed_joins:
        console.print(f"[red]✗ {join.name} did not join:[/red] {join.detail}")
    for tool in report.failed_tools:
        console.print(f"[red]✗ {tool.name} not installed:[/red] {tool.detail}")
    if not report.nodes_ready:
        console.print(f"[yellow]Not every node is Ready yet. Check with:[/yellow] multipass exec {config.control_node} -- kubectl get nodes")

    console.print(f"[blue]kubeadm config API:[/blue] {report.schema.api_version if report.schema else 'unknown'}")
    console.print()
    console.print("[green]To use kubectl from your host:[/green]")
    console.print(f"  export KUBECONFIG={report.kubeconfig}", markup=False)
    console.print()
    console.print("[blue]Quick commands:[/blue]")
    for name in config.node_names:
        console.print(f"  multipass shell {name}", markup=False)
    console.print()
    installed = {t.name for t in report.tools if t.ok}
    console.print("[blue]CKS tools installed on control plane:[/blue]")
    for tool in TOOLS:
        if tool.name in installed:
            console.print(f"  {tool.usage}", markup=False)
    console.print()
    console.print("[yellow]To destroy cluster:[/yellow] ckslab destroy")
