"""Readiness polling.

Two pollers live here:

- ``wait_for_cloud_init`` waits, node by node, for the cloud-init sentinel
  file. Progress shown to the user is scraped from the cloud-init output log
  and is purely cosmetic; only the sentinel decides when a node is done.
- ``wait_for_nodes_ready`` counts Ready nodes reported by kubectl on the
  primary until every configured node is Ready or the attempts run out.
"""
import logging
import re
import time
from typing import Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape

from ckslab.config import ClusterConfig
from .cloud_init import OUTPUT_LOG_PATH, SENTINEL_PATH
from .errors import ReadinessTimeout
from .models import Node, StepResult
from .polling import attempts_for, poll

logger = logging.getLogger("ckslab.readiness")

PROGRESS_PATTERN = re.compile(
    r"(Setting up|Unpacking|Installing|Get:|Hit:|Fetched|Reading|Processing"
    r"|modprobe|systemctl|kubeadm|kubelet|kubectl)"
)
PROGRESS_WIDTH = 70
PROGRESS_TAIL_LINES = 20
DEFAULT_STAGE = "Initializing..."

QUIET_INTERVAL = 3.0
VERBOSE_INTERVAL = 2.0


def latest_progress_line(log_text: str, width: int = PROGRESS_WIDTH) -> Optional[str]:
    """Most recent log line that looks like install progress, truncated."""
    matches = [line.strip() for line in log_text.splitlines() if PROGRESS_PATTERN.search(line)]
    if not matches:
        return None
    return matches[-1][:width]


class StageTracker:
    """Remembers the last progress text shown for a node."""

    def __init__(self):
        self.last: Optional[str] = None

    def update(self, stage: str) -> bool:
        """Record ``stage``; True when it differs from the previous one."""
        if not stage or stage == self.last:
            return False
        self.last = stage
        return True


def sentinel_present(backend, node: Node) -> bool:
    return backend.file_exists(node.name, SENTINEL_PATH)


def _wait_quiet(backend, node: Node, attempts: int, console: Console, sleep: Callable) -> bool:
    tracker = StageTracker()

    def show_progress(_attempt: int) -> None:
        stage = latest_progress_line(backend.tail(node.name, OUTPUT_LOG_PATH, PROGRESS_TAIL_LINES))
        if tracker.update(stage or DEFAULT_STAGE):
            console.print(f"  [cyan]{node.name}[/cyan]: [dim]{escape(tracker.last)}[/dim]")

    return poll(
        lambda: sentinel_present(backend, node),
        attempts=attempts,
        interval=QUIET_INTERVAL,
        sleep=sleep,
        on_wait=show_progress,
    )


def _wait_verbose(backend, node: Node, attempts: int, console: Console, sleep: Callable) -> bool:
    console.print(f"[blue]━━━ {node.name} cloud-init logs ━━━[/blue]")
    handle = backend.follow(node.name, OUTPUT_LOG_PATH)
    try:
        return poll(
            lambda: sentinel_present(backend, node),
            attempts=attempts,
            interval=VERBOSE_INTERVAL,
            sleep=sleep,
        )
    finally:
        handle.terminate()
        handle.wait()


def wait_for_cloud_init(
    backend,
    config: ClusterConfig,
    console: Console,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> List[StepResult]:
    """Block until every node has written its cloud-init sentinel.

    Raises:
        ReadinessTimeout: If a node is not done within ``cloud_init_timeout``
    """
    logger.info("⏳ Waiting for cloud-init to complete on all nodes...")
    interval = VERBOSE_INTERVAL if config.verbose else QUIET_INTERVAL
    attempts = attempts_for(config.cloud_init_timeout, interval)

    results = []
    for node in config.nodes:
        start = clock()
        if config.verbose:
            done = _wait_verbose(backend, node, attempts, console, sleep)
        else:
            done = _wait_quiet(backend, node, attempts, console, sleep)

        if not done:
            raise ReadinessTimeout(
                f"{node.name} did not finish cloud-init within {config.cloud_init_timeout}s. "
                f"Inspect it with: multipass exec {node.name} -- tail {OUTPUT_LOG_PATH}"
            )
        duration = int(clock() - start)
        console.print(f"  [cyan]{node.name}[/cyan]: [green]✓ ready[/green] ({duration}s)")
        results.append(StepResult(node.name, True, f"ready after {duration}s"))

    logger.info(f"⏳ Letting services stabilize ({config.stabilize_delay:g}s)...")
    sleep(config.stabilize_delay)
    logger.info("✅ Cloud-init completed on all nodes")
    return results


def parse_node_status(output: str) -> Tuple[int, int]:
    """Count Ready and NotReady rows in ``kubectl get nodes --no-headers`` output."""
    ready = not_ready = 0
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        status = fields[1].split(",")[0]
        if status == "Ready":
            ready += 1
        elif status == "NotReady":
            not_ready += 1
    return ready, not_ready


def wait_for_nodes_ready(
    backend,
    config: ClusterConfig,
    console: Console,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll until every configured node is Ready.

    Gives up after ``node_ready_attempts`` checks. A timeout is not fatal:
    a warning is logged and False is returned so the run can continue.
    """
    logger.info("⏳ Waiting for all nodes to be Ready...")
    expected = len(config.nodes)
    primary = config.primary
    seen: Dict[str, Tuple[int, int]] = {}

    def all_ready() -> bool:
        result = backend.exec(primary.name, ["kubectl", "get", "nodes", "--no-headers"], check=False)
        output = result.stdout if result.returncode == 0 else ""
        ready, not_ready = parse_node_status(output)
        if seen.get("last") != (ready, not_ready):
            seen["last"] = (ready, not_ready)
            line = f"  Nodes: [green]{ready} Ready[/green]"
            if not_ready:
                line += f", [yellow]{not_ready} NotReady[/yellow]"
            console.print(line)
        return ready == expected

    if poll(all_ready, attempts=config.node_ready_attempts, interval=config.node_ready_interval, sleep=sleep):
        console.print(f"  Nodes: [green]{expected}/{expected} Ready ✓[/green]")
        logger.info("✅ All nodes are Ready")
        return True

    logger.warning(
        f"⚠️  Timeout waiting for nodes. Check status with: "
        f"multipass exec {primary.name} -- kubectl get nodes"
    )
    return False
