import logging
import subprocess

import typer
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from rich.console import Console
from rich.table import Table
from urllib3.exceptions import HTTPError

from ckslab.config import load_cluster_config
from ckslab.modules.multipass import get_backend
from ckslab.utils.kube import list_nodes, load_kubeconfig

logger = logging.getLogger("ckslab.status")


def status_cluster_cmd():
    """Show node health using the exported kubeconfig."""
    try:
        config = load_cluster_config()
        api_client = load_kubeconfig(str(config.kubeconfig_path))
    except (ValueError, FileNotFoundError, ConfigException) as e:
        logger.error(str(e))
        raise typer.Exit(code=1)

    backend = get_backend()
    vms = None
    if backend.available():
        try:
            vms = set(backend.list_names())
        except subprocess.CalledProcessError:
            logger.warning("⚠️  Could not list Multipass VMs")

    try:
        nodes = {node["name"]: node for node in list_nodes(api_client)}
    except (ApiException, HTTPError) as e:
        logger.error(f"❌ Could not reach the API server: {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"📡 Cluster status ({config.kubeconfig_path})")
    table.add_column("Node")
    table.add_column("VM")
    table.add_column("Role")
    table.add_column("Ready")
    table.add_column("Internal IP")
    table.add_column("Version")
    for name in config.node_names:
        node = nodes.get(name)
        if vms is None:
            vm = "[yellow]unknown[/yellow]"
        else:
            vm = "[green]present[/green]" if name in vms else "[red]missing[/red]"
        if node is None:
            table.add_row(name, vm, "-", "[red]not registered[/red]", "-", "-")
            continue
        ready = "[green]Ready[/green]" if node["ready"] else "[red]NotReady[/red]"
        table.add_row(name, vm, node["role"], ready, node["internal_ip"], node["version"])

    Console().print(table)

    if not all(nodes.get(name, {}).get("ready") for name in config.node_names):
        raise typer.Exit(code=1)
