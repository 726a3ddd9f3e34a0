import logging
import shlex
import subprocess
from typing import List

from rich.console import Console

from .errors import ControlPlaneError
from .models import Node, StepResult
from .readiness import sentinel_present

logger = logging.getLogger("ckslab.join")


def fetch_join_command(backend, primary: Node) -> List[str]:
    """Ask the primary node for a fresh ``kubeadm join`` command."""
    logger.info("🔐 Generating join token...")
    try:
        result = backend.exec(
            primary.name,
            ["sudo", "kubeadm", "token", "create", "--print-join-command"],
            log_output=False,
        )
    except subprocess.CalledProcessError as e:
        raise ControlPlaneError(f"Could not create a join token on {primary.name}") from e

    command = shlex.split(result.stdout.strip())
    if command[:2] != ["kubeadm", "join"]:
        raise ControlPlaneError(f"Unexpected join command from {primary.name}")
    return command


def join_workers(backend, primary: Node, workers: List[Node], console: Console) -> List[StepResult]:
    """Join every secondary node to the cluster.

    One join command is used for all workers. A failure on one worker is
    recorded and the remaining workers are still attempted.
    """
    logger.info("🔗 Joining worker nodes...")
    join_command = fetch_join_command(backend, primary)

    results = []
    for worker in workers:
        if not sentinel_present(backend, worker):
            console.print(f"  [cyan]{worker.name}[/cyan]: [red]✗ cloud-init not finished[/red]")
            results.append(StepResult(worker.name, False, "cloud-init sentinel missing"))
            continue

        console.print(f"  [cyan]{worker.name}[/cyan]: joining cluster...")
        try:
            backend.exec(worker.name, ["sudo", *join_command])
        except subprocess.CalledProcessError as e:
            logger.warning(f"⚠️  {worker.name} failed to join (exit code {e.returncode})")
            console.print(f"  [cyan]{worker.name}[/cyan]: [red]✗ join failed[/red]")
            results.append(StepResult(worker.name, False, f"kubeadm join exited {e.returncode}"))
            continue
        console.print(f"  [cyan]{worker.name}[/cyan]: [green]✓ joined[/green]")
        results.append(StepResult(worker.name, True, "joined"))

    failed = [r.name for r in results if not r.ok]
    if failed:
        logger.warning(f"⚠️  Workers not joined: {', '.join(failed)}")
    else:
        logger.info("✅ All workers joined")
    return results
