"""Export the cluster admin kubeconfig to the host."""
import ipaddress
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict
from urllib.parse import urlsplit

import yaml

from ckslab.config import ClusterConfig
from ckslab.utils import write_yaml_file
from .errors import KubeconfigError
from .kubeadm import API_SERVER_PORT
from .models import Node

logger = logging.getLogger("ckslab.kubeconfig")

ADMIN_CONF = "/etc/kubernetes/admin.conf"


def is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def server_host(server: str) -> str:
    return urlsplit(server).hostname or ""


def rewrite_server_addresses(kubeconfig: Dict[str, Any], address: str) -> Dict[str, Any]:
    """Point every loopback cluster server at ``address``.

    Raises:
        KubeconfigError: If the document has no clusters or a loopback
            server survives the rewrite
    """
    clusters = kubeconfig.get("clusters") or []
    if not clusters:
        raise KubeconfigError("kubeconfig has no clusters")

    for entry in clusters:
        cluster = entry.setdefault("cluster", {})
        server = cluster.get("server", "")
        if not server or is_loopback(server_host(server)):
            cluster["server"] = f"https://{address}:{API_SERVER_PORT}"
            logger.debug(f"🔁 Rewrote server for {entry.get('name')}: {server!r} → {cluster['server']}")

    leftover = [
        entry["cluster"]["server"] for entry in clusters
        if is_loopback(server_host(entry["cluster"]["server"]))
    ]
    if leftover:
        raise KubeconfigError(f"kubeconfig still points at loopback: {leftover}")
    return kubeconfig


def export_kubeconfig(backend, config: ClusterConfig, primary: Node) -> Path:
    """Copy admin.conf from the primary, rewrite it and save it with mode 0600."""
    logger.info("🔐 Copying kubeconfig to host...")
    if not primary.ip:
        raise KubeconfigError(f"No address known for {primary.name}")

    try:
        result = backend.exec(primary.name, ["sudo", "cat", ADMIN_CONF], log_output=False)
        kubeconfig = yaml.safe_load(result.stdout)
    except subprocess.CalledProcessError as e:
        raise KubeconfigError(f"Could not read {ADMIN_CONF} on {primary.name}") from e
    except yaml.YAMLError as e:
        raise KubeconfigError(f"{ADMIN_CONF} on {primary.name} is not valid YAML: {e}") from e

    if not isinstance(kubeconfig, dict):
        raise KubeconfigError(f"{ADMIN_CONF} on {primary.name} is empty")

    rewrite_server_addresses(kubeconfig, primary.ip)
    path = write_yaml_file(config.kubeconfig_path, kubeconfig, mode=0o600)
    logger.info(f"✅ Kubeconfig saved to: {path}")
    return path
