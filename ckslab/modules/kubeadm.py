"""kubeadm configuration and control plane initialization.

kubeadm moved from the ``v1beta3`` to the ``v1beta4`` configuration API in
Kubernetes 1.31. Both carry the same settings here (audit logging, admission
plugins, pod and service subnets); they differ in how repeated key/value
options are written. ``v1beta3`` uses a mapping::

    extraArgs:
      audit-log-path: /var/log/kubernetes/audit/audit.log

while ``v1beta4`` uses a list of name/value pairs::

    extraArgs:
    - name: audit-log-path
      value: /var/log/kubernetes/audit/audit.log
"""
import logging
import subprocess
import sys
from typing import Any, Dict, List, Tuple

import yaml

from ckslab.config import VERSION_PATTERN, ClusterConfig
from .cloud_init import AUDIT_LOG_DIR, AUDIT_LOG_PATH, AUDIT_POLICY_DIR, AUDIT_POLICY_PATH
from .errors import ControlPlaneError
from .models import Node, SchemaVersion

logger = logging.getLogger("ckslab.kubeadm")

NEW_SCHEMA_MIN_MINOR = 31
API_SERVER_PORT = 6443
REMOTE_CONFIG_PATH = "/etc/kubernetes/kubeadm-config.yaml"
ADMISSION_PLUGINS = "NodeRestriction"


def parse_version(version: str) -> Tuple[int, int]:
    """Split ``MAJOR.MINOR`` into integers.

    Raises:
        ValueError: If the string is not of that form
    """
    match = VERSION_PATTERN.match(version.strip())
    if not match:
        raise ValueError(f"Kubernetes version must look like MAJOR.MINOR, got {version!r}")
    return int(match.group(1)), int(match.group(2))


def select_schema(version: str) -> SchemaVersion:
    """Pick the kubeadm config API for a Kubernetes version."""
    _, minor = parse_version(version)
    return SchemaVersion.NEW if minor >= NEW_SCHEMA_MIN_MINOR else SchemaVersion.LEGACY


def format_args(args: Dict[str, str], schema: SchemaVersion) -> Any:
    """Express repeated key/value options the way ``schema`` expects."""
    if schema == SchemaVersion.NEW:
        return [{"name": key, "value": value} for key, value in args.items()]
    return dict(args)


def api_server_args() -> Dict[str, str]:
    return {
        "audit-policy-file": AUDIT_POLICY_PATH,
        "audit-log-path": AUDIT_LOG_PATH,
        "audit-log-maxage": "30",
        "audit-log-maxbackup": "10",
        "audit-log-maxsize": "100",
        "enable-admission-plugins": ADMISSION_PLUGINS,
    }


def api_server_volumes() -> List[Dict[str, Any]]:
    return [
        {
            "name": "audit-policy",
            "hostPath": AUDIT_POLICY_DIR,
            "mountPath": AUDIT_POLICY_DIR,
            "readOnly": True,
            "pathType": "DirectoryOrCreate",
        },
        {
            "name": "audit-logs",
            "hostPath": AUDIT_LOG_DIR,
            "mountPath": AUDIT_LOG_DIR,
            "readOnly": False,
            "pathType": "DirectoryOrCreate",
        },
    ]


def build_kubeadm_config(config: ClusterConfig, address: str, schema: SchemaVersion) -> List[Dict[str, Any]]:
    """Build the InitConfiguration and ClusterConfiguration documents."""
    init_configuration = {
        "apiVersion": schema.api_version,
        "kind": "InitConfiguration",
        "localAPIEndpoint": {
            "advertiseAddress": address,
            "bindPort": API_SERVER_PORT,
        },
        "nodeRegistration": {
            "name": config.control_node,
            "criSocket": "unix:///run/containerd/containerd.sock",
            "kubeletExtraArgs": format_args({"node-ip": address}, schema),
        },
    }
    cluster_configuration = {
        "apiVersion": schema.api_version,
        "kind": "ClusterConfiguration",
        "controlPlaneEndpoint": f"{address}:{API_SERVER_PORT}",
        "networking": {
            "podSubnet": config.pod_subnet,
            "serviceSubnet": config.service_subnet,
        },
        "apiServer": {
            "extraArgs": format_args(api_server_args(), schema),
            "extraVolumes": api_server_volumes(),
        },
    }
    return [init_configuration, cluster_configuration]


def render_kubeadm_config(config: ClusterConfig, address: str, schema: SchemaVersion) -> str:
    documents = build_kubeadm_config(config, address, schema)
    return yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)


def init_control_plane(backend, config: ClusterConfig, primary: Node) -> SchemaVersion:
    """Run ``kubeadm init`` on the primary node.

    Output always lands in ``config.init_log_path``; in verbose mode it is
    also streamed to the terminal. A failed init is not retried since it
    needs a ``kubeadm reset`` first.

    Raises:
        ControlPlaneError: If the config cannot be written or kubeadm fails
    """
    if not primary.ip:
        raise ControlPlaneError(f"No address known for {primary.name}")

    schema = select_schema(config.k8s_version)
    logger.info(f"🔧 Initializing Kubernetes control plane on {primary.name} ({primary.ip})...")
    logger.info(f"📄 Using kubeadm config API {schema.api_version} for v{config.k8s_version}")

    rendered = render_kubeadm_config(config, primary.ip, schema)
    result = backend.exec(
        primary.name,
        ["sudo", "tee", REMOTE_CONFIG_PATH],
        check=False,
        input=rendered,
    )
    if result.returncode != 0:
        raise ControlPlaneError(f"Could not write {REMOTE_CONFIG_PATH} on {primary.name}: {result.stderr}")

    logger.info("⏳ Running kubeadm init (this takes 1-2 minutes)...")
    code = backend.exec_to_log(
        primary.name,
        ["sudo", "kubeadm", "init", "--config", REMOTE_CONFIG_PATH],
        config.init_log_path,
        echo=config.verbose,
        stream=sys.stdout,
    )
    if code != 0:
        raise ControlPlaneError(
            f"kubeadm init failed on {primary.name} (exit code {code}). See {config.init_log_path}; "
            f"run `ckslab destroy` before trying again."
        )

    logger.info("🔧 Configuring kubectl...")
    try:
        backend.exec(primary.name, [
            "bash", "-c",
            "mkdir -p $HOME/.kube && sudo cp /etc/kubernetes/admin.conf $HOME/.kube/config "
            "&& sudo chown $(id -u):$(id -g) $HOME/.kube/config",
        ])
    except subprocess.CalledProcessError as e:
        raise ControlPlaneError(f"Could not set up kubectl on {primary.name}") from e

    logger.info("✅ Control plane initialized")
    return schema
