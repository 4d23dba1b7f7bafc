"""
Sync Dependencies
"""

from typing import Optional

from kubesync.services.cluster_registry import ClusterRegistry
from kubesync.services.sync_service import ClientFactory


def get_cluster_registry() -> ClusterRegistry:
    """每个请求重新读取 kubeconfig，保证上下文变更即时生效"""
    return ClusterRegistry()


def get_client_factory() -> Optional[ClientFactory]:
    """默认使用 KubeApiClient.from_connection"""
    return None
