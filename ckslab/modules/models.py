"""Data models for the practice cluster."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class NodeRole(str, Enum):
    """Node roles in the cluster."""
    PRIMARY = 'primary'
    SECONDARY = 'secondary'


class SchemaVersion(str, Enum):
    """kubeadm configuration API versions."""
    LEGACY = 'kubeadm.k8s.io/v1beta3'
    NEW = 'kubeadm.k8s.io/v1beta4'

    @property
    def api_version(self) -> str:
        return self.value


@dataclass(frozen=True)
class Node:
    """A Multipass VM participating in the cluster."""
    name: str
    role: NodeRole
    ip: Optional[str] = None

    @property
    def is_primary(self) -> bool:
        return self.role == NodeRole.PRIMARY


@dataclass
class StepResult:
    """Outcome of one per-node or per-tool action."""
    name: str
    ok: bool
    detail: str = ''


@dataclass
class ClusterReport:
    """Summary of a bootstrap run handed back to the caller."""
    schema: Optional[SchemaVersion] = None
    node_ips: Dict[str, str] = field(default_factory=dict)
    joins: List[StepResult] = field(default_factory=list)
    tools: List[StepResult] = field(default_factory=list)
    nodes_ready: bool = False
    kubeconfig: Optional[Path] = None

    @property
    def failed_joins(self) -> List[StepResult]:
        return [r for r in self.joins if not r.ok]

    @property
    def failed_tools(self) -> List[StepResult]:
        return [r for r in self.tools if not r.ok]

    @property
    def complete(self) -> bool:
        """True when nothing recoverable went wrong."""
        return self.nodes_ready and not self.failed_joins and not self.failed_tools
