"""Configuration management for the ckslab application.

Values are resolved with the following precedence:
1. Command line flags
2. The cluster file (``CKSLAB_CONFIG`` or ``ckslab.yaml`` in the work dir)
3. Environment variables (a ``.env`` file is honoured)
4. Default values
"""
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from jsonschema import ValidationError, validate
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ckslab.modules.models import Node, NodeRole

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger("ckslab.config")

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)$")
SIZE_PATTERN = re.compile(r"^\d+[KMG]$")

CLUSTER_FILE_NAME = "ckslab.yaml"

CLUSTER_SCHEMA = {
    "type": "object",
    "properties": {
        "k8s_version": {"type": "string", "pattern": r"^\d+\.\d+$"},
        "control_node": {"type": "string"},
        "worker_nodes": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        "cpus": {"type": "integer", "minimum": 1},
        "memory": {"type": "string"},
        "disk": {"type": "string"},
        "image": {"type": "string"},
        "pod_subnet": {"type": "string"},
        "service_subnet": {"type": "string"},
        "calico_version": {"type": "string"},
        "strict_tools": {"type": "boolean"},
    },
    "additionalProperties": False,
}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in os.getenv(name, default).split(",") if item.strip())


class Config:
    """Application defaults with environment overrides."""

    HOME: str = os.getenv("CKSLAB_HOME", ".")
    CLUSTER_FILE: str = os.getenv("CKSLAB_CONFIG", "")

    # Cluster shape
    K8S_VERSION: str = os.getenv("CKSLAB_K8S_VERSION", "1.35")
    CONTROL_NODE: str = os.getenv("CKSLAB_CONTROL_NODE", "control")
    WORKER_NODES: Tuple[str, ...] = _env_list("CKSLAB_WORKER_NODES", "worker1,worker2")
    CPUS: int = int(os.getenv("CKSLAB_CPUS", "2"))
    MEMORY: str = os.getenv("CKSLAB_MEMORY", "2G")
    DISK: str = os.getenv("CKSLAB_DISK", "20G")
    IMAGE: str = os.getenv("CKSLAB_IMAGE", "22.04")

    # Networking
    POD_SUBNET: str = os.getenv("CKSLAB_POD_SUBNET", "192.168.0.0/16")
    SERVICE_SUBNET: str = os.getenv("CKSLAB_SERVICE_SUBNET", "10.96.0.0/12")
    CALICO_VERSION: str = os.getenv("CKSLAB_CALICO_VERSION", "v3.29.1")

    STRICT_TOOLS: bool = _env_bool("CKSLAB_STRICT_TOOLS")

    # Timeouts and intervals (in seconds)
    CLOUD_INIT_TIMEOUT: int = int(os.getenv("CKSLAB_CLOUD_INIT_TIMEOUT", "1800"))
    NODE_READY_ATTEMPTS: int = int(os.getenv("CKSLAB_NODE_READY_ATTEMPTS", "30"))
    NODE_READY_INTERVAL: float = float(os.getenv("CKSLAB_NODE_READY_INTERVAL", "10"))

    # Logging
    LOG_LEVEL: str = os.getenv("CKSLAB_LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "CKSLAB_LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Security
    REDACT_FLAGS: tuple = ("--token", "--discovery-token-ca-cert-hash", "--certificate-key")


class ClusterConfig(BaseModel):
    """Parameters for one create or destroy run. Read-only once built."""
    model_config = ConfigDict(frozen=True)

    k8s_version: str = Field(default=Config.K8S_VERSION, description="Target Kubernetes MAJOR.MINOR")
    control_node: str = Field(default=Config.CONTROL_NODE, description="Primary node VM name")
    worker_nodes: Tuple[str, ...] = Field(default=Config.WORKER_NODES, description="Secondary node VM names")
    cpus: int = Field(default=Config.CPUS, ge=1, description="vCPUs per VM")
    memory: str = Field(default=Config.MEMORY, description="Memory per VM")
    disk: str = Field(default=Config.DISK, description="Disk per VM")
    image: str = Field(default=Config.IMAGE, description="Multipass image")
    pod_subnet: str = Field(default=Config.POD_SUBNET)
    service_subnet: str = Field(default=Config.SERVICE_SUBNET)
    calico_version: str = Field(default=Config.CALICO_VERSION)
    strict_tools: bool = Field(default=Config.STRICT_TOOLS, description="Abort on first tool failure")
    verbose: bool = Field(default=False, description="Stream logs instead of summarizing")
    workdir: Path = Field(default_factory=lambda: Path(Config.HOME))

    cloud_init_timeout: int = Field(default=Config.CLOUD_INIT_TIMEOUT, ge=1)
    node_ready_attempts: int = Field(default=Config.NODE_READY_ATTEMPTS, ge=1)
    node_ready_interval: float = Field(default=Config.NODE_READY_INTERVAL, ge=0)
    stabilize_delay: float = Field(default=10.0, ge=0)
    cni_settle_delay: float = Field(default=10.0, ge=0)

    @field_validator("k8s_version")
    @classmethod
    def check_version(cls, v: str) -> str:
        if not VERSION_PATTERN.match(v):
            raise ValueError(f"Kubernetes version must look like MAJOR.MINOR, got {v!r}")
        return v

    @field_validator("memory", "disk")
    @classmethod
    def check_size(cls, v: str) -> str:
        if not SIZE_PATTERN.match(v):
            raise ValueError(f"Size must look like 2G or 512M, got {v!r}")
        return v

    @field_validator("worker_nodes", mode="before")
    @classmethod
    def split_workers(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(name.strip() for name in v.split(",") if name.strip())
        return v

    @model_validator(mode="after")
    def check_names(self) -> "ClusterConfig":
        names = self.node_names
        if not self.worker_nodes:
            raise ValueError("At least one worker node is required")
        if len(set(names)) != len(names):
            raise ValueError(f"Node names must be distinct: {names}")
        return self

    @property
    def node_names(self) -> List[str]:
        return [self.control_node, *self.worker_nodes]

    @property
    def primary(self) -> Node:
        return Node(name=self.control_node, role=NodeRole.PRIMARY)

    @property
    def secondaries(self) -> List[Node]:
        return [Node(name=name, role=NodeRole.SECONDARY) for name in self.worker_nodes]

    @property
    def nodes(self) -> List[Node]:
        return [self.primary, *self.secondaries]

    @property
    def cloud_init_path(self) -> Path:
        return self.workdir / "cloud-init.yaml"

    @property
    def kubeconfig_path(self) -> Path:
        return self.workdir / "kubeconfig"

    @property
    def init_log_path(self) -> Path:
        return self.workdir / "kubeadm-init.log"

    @property
    def generated_files(self) -> List[Path]:
        return [self.cloud_init_path, self.kubeconfig_path, self.init_log_path]


def find_cluster_file(workdir: Optional[Path] = None) -> Optional[Path]:
    """Locate the optional cluster file."""
    if Config.CLUSTER_FILE:
        path = Path(Config.CLUSTER_FILE).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"❌ Cluster file not found: {path}")
        return path
    candidate = (workdir or Path(Config.HOME)) / CLUSTER_FILE_NAME
    return candidate if candidate.exists() else None


def load_cluster_file(path: Path) -> Dict[str, Any]:
    """Load and schema-check a cluster file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    try:
        validate(instance=data, schema=CLUSTER_SCHEMA)
    except ValidationError as ve:
        raise ValueError(f"❌ Cluster file {path} is invalid: {ve.message}") from ve

    logger.debug(f"📄 Loaded cluster file {path}")
    return data


def load_cluster_config(cluster_file: Optional[Path] = None, **overrides: Any) -> ClusterConfig:
    """Build the run configuration from defaults, cluster file and flags.

    Overrides whose value is ``None`` are ignored so unset CLI options fall
    through to the file and environment.
    """
    workdir = overrides.get("workdir") or Path(Config.HOME)
    path = cluster_file or find_cluster_file(Path(workdir))
    values: Dict[str, Any] = load_cluster_file(path) if path else {}
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ClusterConfig(**values)
