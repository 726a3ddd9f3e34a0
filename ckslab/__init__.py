"""CKS practice cluster lifecycle on local Multipass VMs."""

__version__ = "0.1.0"
