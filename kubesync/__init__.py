"""
kubesync - multi-cluster Kubernetes inventory sync.
"""

__version__ = "0.1.0"
