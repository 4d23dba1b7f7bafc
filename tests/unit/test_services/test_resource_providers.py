"""
Test Resource Providers
"""

import asyncio
from datetime import datetime, timezone

import pytest

from kubesync.core.constants import ResourceKind
from kubesync.core.exceptions import ClusterConnectionError, TransientFetchError
from kubesync.services.kubeconfig_loader import ClusterConnection
from kubesync.services.resource_providers import PROVIDERS, cluster_info_row

CONNECTION = ClusterConnection(
    context_name="dev",
    cluster_name="dev-cluster",
    server="https://dev.example.com:6443",
    namespace="team-a",
    ca_file="/etc/ca.crt",
)


def _list(kind, client, degraded=None):
    async def _run():
        return [row async for row in PROVIDERS[kind].list(client, CONNECTION, degraded)]

    return asyncio.run(_run())


def test_every_kind_has_a_provider():
    assert set(PROVIDERS) == set(ResourceKind)


def test_namespace_projection(fake_client_class, k8s_item):
    """测试命名空间投影"""
    client = fake_client_class(
        CONNECTION,
        resources={"/api/v1/namespaces": [k8s_item("ns-1", "default", status={"phase": "Active"})]},
    )
    [row] = _list(ResourceKind.NAMESPACES, client)

    assert row.uid == "ns-1"
    assert row.name == "default"
    assert row.status == "Active"
    assert row.created_at == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def test_pod_projection(fake_client_class, k8s_item):
    client = fake_client_class(
        CONNECTION,
        resources={"/api/v1/pods": [k8s_item("pod-1", "web-0", namespace="shop", status={"phase": "Running"})]},
    )
    [row] = _list(ResourceKind.PODS, client)

    assert (row.namespace, row.status) == ("shop", "Running")


def test_deployment_projection(fake_client_class, k8s_item):
    """测试 Deployment 副本数（spec 缺省时取 status）"""
    client = fake_client_class(
        CONNECTION,
        resources={
            "/apis/apps/v1/deployments": [
                k8s_item("d-1", "web", namespace="shop", spec={"replicas": 3}, status={"replicas": 2, "readyReplicas": 2}),
                k8s_item("d-2", "worker", namespace="shop", status={"replicas": 4}),
            ]
        },
    )
    rows = _list(ResourceKind.DEPLOYMENTS, client)

    assert [(r.replicas, r.ready) for r in rows] == [(3, 2), (4, 0)]


def test_service_projection(fake_client_class, k8s_item):
    client = fake_client_class(
        CONNECTION,
        resources={"/api/v1/services": [k8s_item("s-1", "web", namespace="shop", spec={"type": "ClusterIP", "clusterIP": "10.0.0.12"})]},
    )
    [row] = _list(ResourceKind.SERVICES, client)

    assert (row.type, row.cluster_ip) == ("ClusterIP", "10.0.0.12")


def test_crd_projection(fake_client_class, k8s_item):
    """测试 CRD 投影"""
    crd = k8s_item(
        "crd-1",
        "widgets.example.com",
        spec={"group": "example.com", "scope": "Namespaced", "names": {"kind": "Widget", "plural": "widgets"}},
    )
    client = fake_client_class(
        CONNECTION, resources={"/apis/apiextensions.k8s.io/v1/customresourcedefinitions": [crd]}
    )
    [row] = _list(ResourceKind.CRDS, client)

    assert (row.group_name, row.kind, row.plural, row.scope) == ("example.com", "Widget", "widgets", "Namespaced")


def test_item_without_uid_is_skipped(fake_client_class, k8s_item):
    client = fake_client_class(
        CONNECTION,
        resources={"/api/v1/pods": [k8s_item("", "orphan"), k8s_item("pod-2", "ok")]},
    )
    rows = _list(ResourceKind.PODS, client)

    assert [r.uid for r in rows] == ["pod-2"]


def test_fetch_error_propagates(fake_client_class, fetch_error):
    client = fake_client_class(CONNECTION, errors={"/api/v1/pods": fetch_error(403)})

    with pytest.raises(TransientFetchError) as exc_info:
        _list(ResourceKind.PODS, client)

    assert exc_info.value.status_code == 403


def test_cluster_info_aggregation(fake_client_class, k8s_item):
    """测试集群信息聚合"""
    client = fake_client_class(
        CONNECTION,
        resources={"/api/v1/nodes": [k8s_item("n1", "node-1"), k8s_item("n2", "node-2")]},
        version="v1.29.2",
    )
    degraded = []
    [row] = _list(ResourceKind.CLUSTERS, client, degraded)

    assert row.cluster_name == "dev-cluster"
    assert row.namespace == "team-a"
    assert row.server == "https://dev.example.com:6443"
    assert row.ca_file == "/etc/ca.crt"
    assert row.kubernetes_version == "v1.29.2"
    assert row.node_count == 2
    assert degraded == []


def test_cluster_info_degrades_node_count(fake_client_class, fetch_error):
    """测试节点列表被拒绝时节点数降级为 0"""
    client = fake_client_class(CONNECTION, errors={"/api/v1/nodes": fetch_error(403)})
    degraded = []
    [row] = _list(ResourceKind.CLUSTERS, client, degraded)

    assert row.node_count == 0
    assert row.kubernetes_version == "v1.29.2"
    assert [d.field for d in degraded] == ["node_count"]


def test_cluster_info_degrades_version(fake_client_class, fetch_error):
    """测试版本读取失败时降级为空串"""
    client = fake_client_class(CONNECTION, version_error=fetch_error(500))
    degraded = []
    [row] = _list(ResourceKind.CLUSTERS, client, degraded)

    assert row.kubernetes_version == ""
    assert [d.field for d in degraded] == ["kubernetes_version"]
    assert degraded[0].code == "DEGRADED_READ"


def test_cluster_info_connection_error_propagates(fake_client_class):
    client = fake_client_class(CONNECTION, version_error=ClusterConnectionError("down", context="dev"))

    with pytest.raises(ClusterConnectionError):
        _list(ResourceKind.CLUSTERS, client, [])


def test_row_to_record(fake_client_class, k8s_item):
    client = fake_client_class(CONNECTION, resources={"/api/v1/pods": [k8s_item("pod-1", "web-0", namespace="shop")]})
    [row] = _list(ResourceKind.PODS, client)
    synced_at = datetime(2024, 6, 1, tzinfo=timezone.utc)

    record = row.to_record("uid-hash", "dev", synced_at)

    assert record["cluster_uid"] == "uid-hash"
    assert record["context_name"] == "dev"
    assert record["uid"] == "pod-1"
    assert record["synced_at"] == synced_at


def test_malformed_item_is_fetch_error(fake_client_class, k8s_item):
    """测试对象字段格式错误时该资源类型以拉取错误失败"""
    client = fake_client_class(
        CONNECTION,
        resources={"/api/v1/pods": [k8s_item("pod-1", "web-0", created="not-a-time")]},
    )

    with pytest.raises(TransientFetchError) as exc_info:
        _list(ResourceKind.PODS, client)

    assert exc_info.value.kind == "pods"
    assert exc_info.value.context == "dev"


def test_cluster_info_row_defaults_namespace():
    """测试集群信息行与占位行使用相同的命名空间缺省值"""
    connection = ClusterConnection(context_name="dev", cluster_name="", server="https://dev", namespace="")

    row = cluster_info_row(connection)

    assert row.namespace == "default"
    assert row.cluster_name == "dev"
    assert (row.kubernetes_version, row.node_count) == ("", 0)
