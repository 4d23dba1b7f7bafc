"""
Cluster Registry
"""

from typing import Dict, Iterable, List, Optional

from kubesync.core.exceptions import ClusterConnectionError, NotFoundError
from kubesync.core.logging import logger
from kubesync.services.kubeconfig_loader import ClusterConnection, KubeconfigLoader


class ClusterRegistry:
    """上下文注册表：列出配置的上下文，按名称解析连接参数"""

    def __init__(
        self,
        loader: Optional[KubeconfigLoader] = None,
        connections: Optional[Iterable[ClusterConnection]] = None,
    ):
        self.loader = loader or KubeconfigLoader()
        self._connections: Optional[Dict[str, ClusterConnection]] = None
        if connections is not None:
            self._connections = {c.context_name: c for c in connections}

    def _ensure_loaded(self) -> Dict[str, ClusterConnection]:
        if self._connections is None:
            self._connections = {c.context_name: c for c in self.loader.load()}
            logger.info(f"发现 {len(self._connections)} 个 Kubernetes 上下文")
        return self._connections

    def list_contexts(self) -> List[ClusterConnection]:
        """
        列出全部上下文（按名称排序）

        Raises:
            ConfigurationError: 没有凭证来源
        """
        connections = self._ensure_loaded()
        return [connections[name] for name in sorted(connections)]

    def list_context_names(self) -> List[str]:
        return sorted(self._ensure_loaded())

    def resolve(self, context_name: str) -> ClusterConnection:
        """
        按名称解析上下文

        Raises:
            NotFoundError: 上下文不存在
            ClusterConnectionError: 上下文配置不完整，无法建立连接
        """
        connections = self._ensure_loaded()
        connection = connections.get(context_name)
        if connection is None:
            raise NotFoundError(f"上下文不存在: {context_name}")
        if connection.invalid_reason:
            raise ClusterConnectionError(connection.invalid_reason, context=context_name)
        return connection
