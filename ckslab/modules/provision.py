import logging
import subprocess
from pathlib import Path
from typing import Dict, List

from rich.console import Console

from ckslab.config import ClusterConfig
from .errors import ProvisionError
from .models import Node, StepResult

logger = logging.getLogger("ckslab.provision")


def launch_vms(backend, config: ClusterConfig, cloud_init: Path, console: Console) -> List[StepResult]:
    """Launch every configured VM that does not exist yet.

    Safe to re-run: existing VMs are reported and skipped. A failed launch
    aborts the run because every later step needs the VM.
    """
    logger.info("🚧 Launching VMs...")
    results = []
    for node in config.nodes:
        if backend.exists(node.name):
            console.print(f"  [cyan]{node.name}[/cyan]: [yellow]already exists, skipping[/yellow]")
            results.append(StepResult(node.name, True, "already exists"))
            continue

        console.print(f"  [cyan]{node.name}[/cyan]: launching...")
        try:
            backend.launch(
                node.name,
                cpus=config.cpus,
                memory=config.memory,
                disk=config.disk,
                image=config.image,
                cloud_init=cloud_init,
            )
        except subprocess.CalledProcessError as e:
            raise ProvisionError(f"Failed to launch {node.name} (exit code {e.returncode})") from e
        console.print(f"  [cyan]{node.name}[/cyan]: [green]✓ launched[/green]")
        results.append(StepResult(node.name, True, "launched"))

    logger.info("✅ All VMs launched")
    return results


def resolve_addresses(backend, nodes: List[Node]) -> List[Node]:
    """Return copies of ``nodes`` with their IPv4 address filled in."""
    resolved = []
    for node in nodes:
        try:
            ip = backend.ipv4(node.name)
        except (subprocess.CalledProcessError, ValueError, KeyError) as e:
            raise ProvisionError(f"Could not determine the address of {node.name}: {e}") from e
        logger.debug(f"✅ {node.name} → {ip}")
        resolved.append(Node(name=node.name, role=node.role, ip=ip))
    return resolved


def address_map(nodes: List[Node]) -> Dict[str, str]:
    return {node.name: node.ip for node in nodes if node.ip}
