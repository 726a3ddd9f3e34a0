import os
from pathlib import Path
from typing import Any, Dict, List

from kubernetes import client, config


def load_kubeconfig(path: str) -> client.ApiClient:
    """
    Build an API client from the exported kubeconfig.
    Raises FileNotFoundError when the cluster has not been created yet.
    """
    resolved = Path(os.path.expanduser(path)).resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"❌ Kubeconfig not found: {resolved}. Run `ckslab create` first.")
    return config.new_client_from_config(config_file=str(resolved))


def list_nodes(api_client: client.ApiClient) -> List[Dict[str, Any]]:
    """Name, readiness, internal address and kubelet version of every node."""
    v1 = client.CoreV1Api(api_client)
    nodes = []
    for node in v1.list_node().items:
        conditions = {c.type: c.status for c in (node.status.conditions or [])}
        addresses = {a.type: a.address for a in (node.status.addresses or [])}
        labels = node.metadata.labels or {}
        nodes.append({
            "name": node.metadata.name,
            "ready": conditions.get("Ready") == "True",
            "role": "control-plane" if "node-role.kubernetes.io/control-plane" in labels else "worker",
            "internal_ip": addresses.get("InternalIP", ""),
            "version": node.status.node_info.kubelet_version if node.status.node_info else "",
        })
    return nodes
