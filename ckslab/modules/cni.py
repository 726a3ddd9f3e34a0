"""Calico network plugin, installed through the Tigera operator."""
import logging
import subprocess
import time
from typing import Callable, List

from ckslab.config import ClusterConfig
from .errors import NetworkPluginError
from .models import Node

logger = logging.getLogger("ckslab.cni")

CALICO_MANIFEST_BASE = "https://raw.githubusercontent.com/projectcalico/calico/{version}/manifests"


def calico_manifests(version: str) -> List[str]:
    """Operator manifest first, then the custom resources it reconciles."""
    base = CALICO_MANIFEST_BASE.format(version=version)
    return [f"{base}/tigera-operator.yaml", f"{base}/custom-resources.yaml"]


def install_cni(
    backend,
    config: ClusterConfig,
    primary: Node,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Create the Calico manifests from the primary node.

    Only the exit status of each ``kubectl create`` is checked; pod networking
    health shows up later as node readiness.
    """
    logger.info(f"📦 Installing Calico CNI {config.calico_version}...")
    operator, resources = calico_manifests(config.calico_version)

    _create(backend, primary, operator, "Tigera operator")
    logger.info(f"⏳ Waiting for operator to be ready ({config.cni_settle_delay:g}s)...")
    sleep(config.cni_settle_delay)
    _create(backend, primary, resources, "Calico custom resources")

    logger.info("✅ Calico CNI installed")


def _create(backend, primary: Node, url: str, label: str) -> None:
    logger.info(f"📥 Applying {label}...")
    try:
        backend.exec(primary.name, ["kubectl", "create", "-f", url])
    except subprocess.CalledProcessError as e:
        raise NetworkPluginError(f"Failed to apply {label} from {url} (exit code {e.returncode})") from e
