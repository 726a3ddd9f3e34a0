"""cloud-init document shared by every node.

The document is built as plain data and serialized once with PyYAML. It
prepares a node for kubeadm (packages, kernel modules, sysctls, containerd,
kubelet/kubeadm/kubectl from pkgs.k8s.io) and drops the API server audit
policy in place. Its last command writes the sentinel file that the
readiness poller waits for.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from ckslab.config import ClusterConfig
from ckslab.utils import write_yaml_file

logger = logging.getLogger("ckslab.cloud_init")

SENTINEL_PATH = "/var/lib/cloud/instance/kubeadm-ready"
OUTPUT_LOG_PATH = "/var/log/cloud-init-output.log"

AUDIT_POLICY_DIR = "/etc/kubernetes/audit"
AUDIT_POLICY_PATH = f"{AUDIT_POLICY_DIR}/policy.yaml"
AUDIT_LOG_DIR = "/var/log/kubernetes/audit"
AUDIT_LOG_PATH = f"{AUDIT_LOG_DIR}/audit.log"

PACKAGES = [
    "apt-transport-https",
    "ca-certificates",
    "curl",
    "gpg",
    "containerd",
    "jq",
]

KERNEL_MODULES = ["overlay", "br_netfilter"]

SYSCTLS = {
    "net.bridge.bridge-nf-call-iptables": 1,
    "net.bridge.bridge-nf-call-ip6tables": 1,
    "net.ipv4.ip_forward": 1,
}

K8S_KEYRING = "/etc/apt/keyrings/kubernetes-apt-keyring.gpg"


def build_audit_policy() -> Dict[str, Any]:
    """API server audit policy used by the practice cluster."""
    return {
        "apiVersion": "audit.k8s.io/v1",
        "kind": "Policy",
        "omitStages": ["RequestReceived"],
        "rules": [
            # kube-proxy watches are pure noise
            {
                "level": "None",
                "users": ["system:kube-proxy"],
                "verbs": ["watch"],
                "resources": [{"group": "", "resources": ["endpoints", "services", "services/status"]}],
            },
            {
                "level": "Metadata",
                "resources": [{"group": "", "resources": ["secrets", "configmaps"]}],
            },
            {
                "level": "RequestResponse",
                "resources": [{"group": "", "resources": ["pods"]}],
            },
        ],
    }


def _yaml_text(data: Dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def _setup_commands(k8s_version: str) -> List[str]:
    repo = f"https://pkgs.k8s.io/core:/stable:/v{k8s_version}/deb/"
    return [
        *[f"modprobe {module}" for module in KERNEL_MODULES],
        "sysctl --system",
        "swapoff -a",
        "sed -i '/ swap / s/^/#/' /etc/fstab",
        "mkdir -p /etc/containerd",
        "containerd config default > /etc/containerd/config.toml",
        "sed -i 's/SystemdCgroup = false/SystemdCgroup = true/' /etc/containerd/config.toml",
        "systemctl restart containerd",
        "mkdir -p -m 755 /etc/apt/keyrings",
        f"curl -fsSL {repo}Release.key | gpg --dearmor -o {K8S_KEYRING}",
        f"echo 'deb [signed-by={K8S_KEYRING}] {repo} /' > /etc/apt/sources.list.d/kubernetes.list",
        "apt-get update",
        "apt-get install -y kubelet kubeadm kubectl",
        "apt-mark hold kubelet kubeadm kubectl",
        "systemctl enable --now kubelet",
        f"mkdir -p {AUDIT_LOG_DIR}",
        f"touch {SENTINEL_PATH}",
    ]


def build_cloud_init(config: ClusterConfig) -> Dict[str, Any]:
    """Build the cloud-init document for ``config.k8s_version``."""
    sysctl_lines = "".join(f"{key} = {value}\n" for key, value in SYSCTLS.items())
    return {
        "package_update": True,
        "package_upgrade": False,
        "packages": list(PACKAGES),
        "write_files": [
            {
                "path": "/etc/modules-load.d/k8s.conf",
                "content": "".join(f"{module}\n" for module in KERNEL_MODULES),
            },
            {
                "path": "/etc/sysctl.d/k8s.conf",
                "content": sysctl_lines,
            },
            {
                "path": AUDIT_POLICY_PATH,
                "permissions": "0600",
                "content": _yaml_text(build_audit_policy()),
            },
        ],
        "runcmd": _setup_commands(config.k8s_version),
    }


def write_cloud_init(config: ClusterConfig) -> Path:
    """Render the cloud-init file, replacing any previous one."""
    path = write_yaml_file(
        config.cloud_init_path,
        build_cloud_init(config),
        mode=0o644,
        header="#cloud-config",
    )
    logger.info(f"📄 cloud-init written to {path} (Kubernetes v{config.k8s_version})")
    return path
