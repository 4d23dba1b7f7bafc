"""
Resource Providers

每种资源类型一个 Provider：从单个集群列出对象并投影为规范行。
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Type

from pydantic import ValidationError

from kubesync.core.constants import DEFAULT_NAMESPACE, ResourceKind
from kubesync.core.exceptions import (
    ClusterConnectionError,
    ClusterScopedError,
    DegradedReadError,
    TransientFetchError,
)
from kubesync.core.logging import logger
from kubesync.schemas.resources import (
    ClusterInfoRow,
    CustomResourceDefinitionRow,
    DeploymentRow,
    NamespaceRow,
    PodRow,
    ResourceRow,
    ServiceRow,
)
from kubesync.services.kube_client import KubeApiClient
from kubesync.services.kubeconfig_loader import ClusterConnection

NODES_PATH = "/api/v1/nodes"


def _meta(item: Dict[str, Any]) -> Dict[str, Any]:
    return item.get("metadata") or {}


def cluster_info_row(connection: ClusterConnection, kubernetes_version: str = "", node_count: int = 0) -> ClusterInfoRow:
    """由连接参数构造集群信息行；未探测版本和节点时即为占位行"""
    return ClusterInfoRow(
        cluster_name=connection.cluster_name or connection.context_name,
        server=connection.server,
        ca_file=connection.ca_file,
        insecure_skip_verify=connection.insecure_skip_verify,
        namespace=connection.namespace or DEFAULT_NAMESPACE,
        kubernetes_version=kubernetes_version,
        node_count=node_count,
    )


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class ResourceProvider:
    """Provider 基类：list 调用 + 行投影"""

    kind: ResourceKind
    path: str = ""
    row_model: Type[ResourceRow] = ResourceRow

    async def list(
        self,
        client: KubeApiClient,
        connection: ClusterConnection,
        degraded: Optional[List[DegradedReadError]] = None,
    ) -> AsyncIterator[Any]:
        """
        列出并投影资源

        Raises:
            TransientFetchError: list 调用失败或对象无法投影
            ClusterConnectionError: 集群不可达
        """
        async for item in client.list_items(self.path, kind=self.kind.value):
            meta = _meta(item)
            if not meta.get("uid"):
                logger.warning(
                    f"资源缺少 uid，已跳过: 上下文={connection.context_name}, 资源类型={self.kind.value}, 名称={meta.get('name')}"
                )
                continue
            try:
                row = self.project(item)
            except (ValidationError, ValueError, KeyError, TypeError) as e:
                # 单个对象格式异常时该资源类型整体失败，不影响其他类型和集群
                raise TransientFetchError(
                    f"资源投影失败: 名称={meta.get('name')}, 错误={e}",
                    context=connection.context_name,
                    kind=self.kind.value,
                ) from e
            yield row

    def project(self, item: Dict[str, Any]) -> ResourceRow:
        meta = _meta(item)
        return self.row_model(
            uid=meta["uid"],
            name=meta.get("name") or "",
            created_at=meta.get("creationTimestamp"),
            **self.payload(item),
        )

    def payload(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {}


class NamespaceProvider(ResourceProvider):
    kind = ResourceKind.NAMESPACES
    path = "/api/v1/namespaces"
    row_model = NamespaceRow

    def payload(self, item):
        return {"status": (item.get("status") or {}).get("phase") or ""}


class PodProvider(ResourceProvider):
    kind = ResourceKind.PODS
    path = "/api/v1/pods"
    row_model = PodRow

    def payload(self, item):
        return {
            "namespace": _meta(item).get("namespace") or "",
            "status": (item.get("status") or {}).get("phase") or "",
        }


class DeploymentProvider(ResourceProvider):
    kind = ResourceKind.DEPLOYMENTS
    path = "/apis/apps/v1/deployments"
    row_model = DeploymentRow

    def payload(self, item):
        spec = item.get("spec") or {}
        status = item.get("status") or {}
        # 期望副本数取 spec.replicas，缺省时退回 status.replicas
        desired = spec.get("replicas")
        if desired is None:
            desired = status.get("replicas")
        return {
            "namespace": _meta(item).get("namespace") or "",
            "replicas": _as_int(desired),
            "ready": _as_int(status.get("readyReplicas")),
        }


class ServiceProvider(ResourceProvider):
    kind = ResourceKind.SERVICES
    path = "/api/v1/services"
    row_model = ServiceRow

    def payload(self, item):
        spec = item.get("spec") or {}
        return {
            "namespace": _meta(item).get("namespace") or "",
            "type": spec.get("type") or "",
            "cluster_ip": spec.get("clusterIP") or "",
        }


class CustomResourceDefinitionProvider(ResourceProvider):
    kind = ResourceKind.CRDS
    path = "/apis/apiextensions.k8s.io/v1/customresourcedefinitions"
    row_model = CustomResourceDefinitionRow

    def payload(self, item):
        spec = item.get("spec") or {}
        names = spec.get("names") or {}
        return {
            "group_name": spec.get("group") or "",
            "kind": names.get("kind") or "",
            "plural": names.get("plural") or "",
            "scope": spec.get("scope") or "",
        }


class ClusterInfoProvider(ResourceProvider):
    """
    集群信息不是单次 list，而是聚合：
    上下文中的集群名/命名空间、Server 版本（失败降级为空串）、节点数量（失败降级为 0）。
    降级会追加到 degraded 列表，由调用方计入诊断。
    """

    kind = ResourceKind.CLUSTERS
    path = NODES_PATH

    async def list(self, client, connection, degraded=None):
        if degraded is None:
            degraded = []
        version = await self._server_version(client, connection, degraded)
        node_count = await self._node_count(client, connection, degraded)
        yield cluster_info_row(connection, kubernetes_version=version, node_count=node_count)

    async def _server_version(self, client, connection, degraded) -> str:
        try:
            return await client.server_version()
        except ClusterConnectionError:
            raise
        except ClusterScopedError as e:
            logger.warning(f"获取集群版本失败，使用空值: 上下文={connection.context_name}, 错误={e.message}")
            degraded.append(
                DegradedReadError(e.message, context=connection.context_name, kind=self.kind.value, field="kubernetes_version")
            )
            return ""

    async def _node_count(self, client, connection, degraded) -> int:
        count = 0
        try:
            async for _ in client.list_items(NODES_PATH, kind="nodes"):
                count += 1
        except ClusterConnectionError:
            raise
        except ClusterScopedError as e:
            logger.warning(f"获取节点数量失败，使用 0: 上下文={connection.context_name}, 错误={e.message}")
            degraded.append(
                DegradedReadError(e.message, context=connection.context_name, kind=self.kind.value, field="node_count")
            )
            return 0
        return count


PROVIDERS: Dict[ResourceKind, ResourceProvider] = {
    ResourceKind.CLUSTERS: ClusterInfoProvider(),
    ResourceKind.NAMESPACES: NamespaceProvider(),
    ResourceKind.PODS: PodProvider(),
    ResourceKind.DEPLOYMENTS: DeploymentProvider(),
    ResourceKind.SERVICES: ServiceProvider(),
    ResourceKind.CRDS: CustomResourceDefinitionProvider(),
}
