"""Cluster bootstrap pipeline."""
import logging
import time
from typing import Callable, Optional

from rich.console import Console

from ckslab.config import ClusterConfig
from .cloud_init import write_cloud_init
from .cni import install_cni
from .join import join_workers
from .kubeadm import init_control_plane
from .kubeconfig import export_kubeconfig
from .models import ClusterReport
from .multipass import Multipass
from .prerequisites import check_prerequisites
from .provision import address_map, launch_vms, resolve_addresses
from .readiness import wait_for_cloud_init, wait_for_nodes_ready
from .tools import install_tools

logger = logging.getLogger("ckslab.orchestrator")


class ClusterBootstrap:
    """Runs every step needed to go from nothing to a working cluster."""

    def __init__(
        self,
        config: ClusterConfig,
        backend: Optional[Multipass] = None,
        console: Optional[Console] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the bootstrap pipeline.

        Args:
            config: Run configuration, shared read-only by every step
            backend: VM backend; defaults to the local multipass binary
            console: Console used for progress output
            sleep: Sleep function used by every wait, replaceable in tests
        """
        self.config = config
        self.backend = backend or Multipass()
        self.console = console or Console()
        self.sleep = sleep

    def _section(self, title: str) -> None:
        self.console.print()
        self.console.rule(f"[bold]{title}")

    def run(self) -> ClusterReport:
        """Run the pipeline in order.

        Returns:
            ClusterReport describing what was built

        Raises:
            ClusterError: On any fatal step failure; nothing is rolled back
        """
        config = self.config
        backend = self.backend
        report = ClusterReport()

        check_prerequisites(backend)

        self._section("Provisioning")
        cloud_init = write_cloud_init(config)
        launch_vms(backend, config, cloud_init, self.console)

        self._section("cloud-init")
        wait_for_cloud_init(backend, config, self.console, sleep=self.sleep)

        nodes = resolve_addresses(backend, config.nodes)
        report.node_ips = address_map(nodes)
        primary = next(n for n in nodes if n.is_primary)
        workers = [n for n in nodes if not n.is_primary]

        self._section("Control plane")
        report.schema = init_control_plane(backend, config, primary)

        self._section("Networking")
        install_cni(backend, config, primary, sleep=self.sleep)

        self._section("Workers")
        report.joins = join_workers(backend, primary, workers, self.console)

        report.nodes_ready = wait_for_nodes_ready(backend, config, self.console, sleep=self.sleep)

        self._section("Tools")
        report.tools = install_tools(backend, primary, self.console, strict=config.strict_tools)

        report.kubeconfig = export_kubeconfig(backend, config, primary)
        return report
