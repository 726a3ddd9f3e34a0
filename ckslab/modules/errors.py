"""Exceptions raised by the cluster lifecycle steps."""


class ClusterError(Exception):
    """Base class for errors that abort a ckslab run."""
    pass


class PrerequisiteError(ClusterError):
    """Raised when a required host binary is missing."""
    pass


class ProvisionError(ClusterError):
    """Raised when a VM cannot be launched."""
    pass


class ReadinessTimeout(ClusterError):
    """Raised when a node never reports its cloud-init sentinel."""
    pass


class ControlPlaneError(ClusterError):
    """Raised when kubeadm init fails on the primary node."""
    pass


class NetworkPluginError(ClusterError):
    """Raised when a CNI manifest cannot be applied."""
    pass


class ToolInstallError(ClusterError):
    """Raised on tool installation failure when running in strict mode."""
    pass


class KubeconfigError(ClusterError):
    """Raised when the admin kubeconfig cannot be exported safely."""
    pass
