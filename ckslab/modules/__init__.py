"""
Cluster lifecycle steps: VM backend, cloud-init, kubeadm, CNI, join, tools and teardown.
"""
