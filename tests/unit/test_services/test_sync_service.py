"""
Test Cluster Sync Service
"""

import asyncio
import threading

import pytest
from sqlalchemy import select

from kubesync.config.database import SessionLocal
from kubesync.core.constants import ResourceKind
from kubesync.core.exceptions import ClusterConnectionError, ConfigurationError, StoreUnavailableError
from kubesync.models import MODELS_BY_KIND, K8sCluster
from kubesync.schemas.messages import InsertMessage, MigrateTableMessage
from kubesync.schemas.sync import SyncSpec, TableOptions
from kubesync.services.kubeconfig_loader import ClusterConnection
from kubesync.services.sink import MessageSink, StoreSink, SyncSink

NAMESPACES = "/api/v1/namespaces"
PODS = "/api/v1/pods"
NODES = "/api/v1/nodes"


def _run(clusters, sink, spec=None, table_options=None, cancel_event=None, max_concurrency=None):
    from kubesync.services.sync_service import ClusterSyncService

    service = ClusterSyncService(
        registry=clusters.registry,
        sink=sink,
        client_factory=clusters.factory,
        max_concurrency=max_concurrency,
    )
    return asyncio.run(service.run(spec or SyncSpec(), table_options=table_options, cancel_event=cancel_event))


def _snapshot(engine):
    """去掉同步时间后的存储快照"""
    session = SessionLocal(bind=engine)
    try:
        snapshot = {}
        for kind, model in MODELS_BY_KIND.items():
            rows = []
            for obj in session.execute(select(model)).scalars():
                row = {c.name: getattr(obj, c.name) for c in model.__table__.columns}
                row.pop("synced_at")
                row.pop("updated_at", None)
                rows.append(row)
            snapshot[kind] = sorted(rows, key=lambda r: (r["cluster_uid"], r.get("uid", "")))
        return snapshot
    finally:
        session.close()


def _pods(k8s_item, prefix, count):
    return [k8s_item(f"{prefix}-pod-{i}", f"pod-{i}", namespace="default", status={"phase": "Running"}) for i in range(count)]


def test_dev_prod_scenario(clusters, store, k8s_item, fetch_error):
    """测试示例场景：prod 命名空间拉取失败不影响 prod 的 Pod"""
    dev = clusters.add(
        "dev",
        resources={
            NAMESPACES: [k8s_item("dev-ns-1", "default"), k8s_item("dev-ns-2", "shop")],
            PODS: _pods(k8s_item, "dev", 5),
        },
    )
    prod = clusters.add(
        "prod",
        resources={PODS: _pods(k8s_item, "prod", 12)},
        errors={NAMESPACES: fetch_error(403, context="prod", kind="namespaces")},
    )
    spec = SyncSpec(contexts=["dev", "prod"], resources=["namespaces", "pods"])

    report = _run(clusters, StoreSink(store), spec)

    assert store.count(ResourceKind.NAMESPACES, cluster_uid=dev.cluster_uid) == 2
    assert store.count(ResourceKind.NAMESPACES, cluster_uid=prod.cluster_uid) == 0
    assert store.count(ResourceKind.PODS) == 17
    assert store.count(ResourceKind.PODS, cluster_uid=prod.cluster_uid) == 12
    # 集群信息未选中时写入占位行，保证外键成立
    assert store.count(ResourceKind.CLUSTERS) == 2

    [issue] = report.issues
    assert issue.error_type == "TransientFetchError"
    assert issue.context == "prod"
    assert issue.kind == "namespaces"
    assert issue.cluster_uid == prod.cluster_uid

    results = {c.context: c for c in report.clusters}
    assert results["dev"].status == "ok"
    assert results["prod"].status == "partial"
    assert [(k.kind, k.status, k.rows) for k in results["prod"].kinds] == [
        (ResourceKind.NAMESPACES, "error", 0),
        (ResourceKind.PODS, "ok", 12),
    ]


def test_two_runs_are_idempotent(clusters, store, engine, k8s_item):
    """测试两次同步后存储状态一致（同步时间除外）"""
    clusters.add(
        "dev",
        resources={
            NAMESPACES: [k8s_item("ns-1", "default", status={"phase": "Active"})],
            PODS: _pods(k8s_item, "dev", 3),
            NODES: [k8s_item("n1", "node-1")],
        },
    )
    sink = StoreSink(store)

    first = _run(clusters, sink)
    before = _snapshot(engine)
    second = _run(clusters, sink)
    after = _snapshot(engine)

    assert before == after
    assert len(after[ResourceKind.PODS]) == 3
    assert len(after[ResourceKind.CLUSTERS]) == 1
    assert first.total_rows == second.total_rows


def test_aliases_collapse_to_one_cluster(clusters, store, engine, k8s_item):
    """测试指向同一 API Server 的两个上下文只产生一条集群记录"""
    clusters.add("prod", server="https://prod.example.com:6443", resources={PODS: _pods(k8s_item, "prod", 2)})
    clusters.add("prod-admin", server="https://prod.example.com:6443/", resources={PODS: _pods(k8s_item, "prod", 2)})

    report = _run(clusters, StoreSink(store))

    assert store.count(ResourceKind.CLUSTERS) == 1
    assert store.count(ResourceKind.PODS) == 2
    assert clusters.created == ["prod"]
    [result] = report.clusters
    assert result.aliases == ["prod-admin"]


def test_unreachable_cluster_does_not_block_others(clusters, store, k8s_item):
    """测试集群 A 不可达时集群 B 仍然完成同步"""
    clusters.add("a", version_error=ClusterConnectionError("connection refused", context="a"))
    b = clusters.add("b", resources={PODS: _pods(k8s_item, "b", 4)})

    report = _run(clusters, StoreSink(store))

    assert store.count(ResourceKind.PODS, cluster_uid=b.cluster_uid) == 4
    results = {c.context: c for c in report.clusters}
    assert results["a"].status == "unreachable"
    assert all(k.status == "skipped" for k in results["a"].kinds)
    assert results["b"].status == "ok"
    assert [i.error_type for i in report.issues] == ["ClusterConnectionError"]
    assert clusters.clients["a"].closed is True


def test_client_factory_failure_skips_cluster(clusters, store, k8s_item):
    clusters.add("a", connect_error=ClusterConnectionError("bad token file", context="a"))
    clusters.add("b", resources={PODS: _pods(k8s_item, "b", 1)})

    report = _run(clusters, StoreSink(store), SyncSpec(resources=["pods"]))

    assert store.count(ResourceKind.PODS) == 1
    assert {c.context: c.status for c in report.clusters} == {"a": "unreachable", "b": "ok"}


def test_connection_lost_mid_run_skips_remaining_kinds(clusters, store, k8s_item):
    """测试拉取过程中集群不可达时跳过剩余资源类型"""
    clusters.add(
        "dev",
        resources={NAMESPACES: [k8s_item("ns-1", "default")]},
        errors={PODS: ClusterConnectionError("connection reset", context="dev", kind="pods")},
    )

    report = _run(clusters, StoreSink(store), SyncSpec(resources=["namespaces", "pods", "services"]))

    [result] = report.clusters
    assert result.status == "unreachable"
    assert [(k.kind, k.status) for k in result.kinds] == [
        (ResourceKind.NAMESPACES, "ok"),
        (ResourceKind.PODS, "skipped"),
        (ResourceKind.SERVICES, "skipped"),
    ]
    assert "/api/v1/services" not in clusters.clients["dev"].calls
    assert store.count(ResourceKind.NAMESPACES) == 1


def test_node_listing_denied_degrades(clusters, store, engine, fetch_error):
    """测试节点列表被拒绝时集群信息仍然写入，节点数为 0，并计入诊断"""
    clusters.add("dev", errors={NODES: fetch_error(403, context="dev", kind="nodes")})

    report = _run(clusters, StoreSink(store), SyncSpec(resources=["clusters"]))

    session = SessionLocal(bind=engine)
    try:
        cluster = session.execute(select(K8sCluster)).scalar_one()
    finally:
        session.close()
    assert cluster.node_count == 0
    assert cluster.kubernetes_version == "v1.29.2"
    assert report.degraded_reads == 1
    [issue] = report.issues_of("DegradedReadError")
    assert issue.kind == "clusters"
    assert report.clusters[0].status == "ok"


def test_resource_filter_limits_fetches(clusters, store, k8s_item):
    """测试资源过滤：未选中的资源类型不会被拉取"""
    clusters.add("dev", resources={PODS: _pods(k8s_item, "dev", 1)})

    _run(clusters, StoreSink(store), SyncSpec(resources=["pods"]))

    assert clusters.clients["dev"].calls == [PODS]


def test_host_table_filter_limits_fetches(clusters, store):
    """测试宿主表过滤同样限制拉取"""
    clusters.add("dev")

    _run(clusters, StoreSink(store), table_options=TableOptions(skip_tables=["k8s_pods", "k8s_crds", "k8s_clusters"]))

    calls = clusters.clients["dev"].calls
    assert PODS not in calls
    assert NODES not in calls
    assert NAMESPACES in calls


def test_unknown_context_is_recorded(clusters, store, k8s_item):
    """测试不存在的上下文被记录并跳过"""
    clusters.add("dev", resources={PODS: _pods(k8s_item, "dev", 1)})

    report = _run(clusters, StoreSink(store), SyncSpec(contexts=["dev", "ghost"], resources=["pods"]))

    assert store.count(ResourceKind.PODS) == 1
    assert {c.context: c.status for c in report.clusters} == {"ghost": "not_found", "dev": "ok"}
    [issue] = report.issues
    assert issue.error_type == "NotFoundError"
    assert issue.context == "ghost"


def test_unknown_resource_aborts_before_fetch(clusters, store):
    clusters.add("dev")

    with pytest.raises(ConfigurationError):
        _run(clusters, StoreSink(store), SyncSpec(resources=["secrets"]))

    assert clusters.created == []


def test_cancel_between_clusters(clusters, store):
    """测试取消后不再处理剩余集群"""
    clusters.add("a")
    clusters.add("b")
    cancel_event = asyncio.Event()
    cancel_event.set()

    report = _run(clusters, StoreSink(store), cancel_event=cancel_event)

    assert report.cancelled is True
    assert report.clusters == []
    assert clusters.created == []


def test_concurrent_clusters(clusters, store, k8s_item):
    """测试按集群并发同步"""
    for name in ("a", "b", "c"):
        clusters.add(name, resources={PODS: _pods(k8s_item, name, 2)})

    report = _run(clusters, StoreSink(store), SyncSpec(resources=["pods"]), max_concurrency=2)

    assert store.count(ResourceKind.PODS) == 6
    assert sorted(c.context for c in report.clusters) == ["a", "b", "c"]


def test_message_sink(clusters, k8s_item):
    """测试宿主协议输出：先表定义，后行插入"""
    clusters.add("dev", resources={NAMESPACES: [k8s_item("ns-1", "default"), k8s_item("ns-2", "shop")]})
    sink = MessageSink()

    report = _run(clusters, sink, SyncSpec(resources=["namespaces"]))

    messages = sink.messages
    migrates = [m for m in messages if isinstance(m, MigrateTableMessage)]
    inserts = [m for m in messages if isinstance(m, InsertMessage)]
    assert [m.table.name for m in migrates] == ["k8s_clusters", "k8s_namespaces"]
    assert messages[:2] == migrates
    assert [m.table for m in inserts] == ["k8s_clusters", "k8s_namespaces", "k8s_namespaces"]
    assert report.total_rows == 2


def test_store_unavailable_aborts_run(clusters, k8s_item):
    """测试数据库整体不可用时终止本次运行"""

    class BrokenSink(SyncSink):
        def ensure_cluster(self, record, context=None):
            pass

        def write(self, kind, records, context=None):
            raise StoreUnavailableError("database is down", context=context, kind=kind.value)

    clusters.add("a", resources={PODS: _pods(k8s_item, "a", 1)})
    clusters.add("b", resources={PODS: _pods(k8s_item, "b", 1)})

    with pytest.raises(StoreUnavailableError):
        _run(clusters, BrokenSink(), SyncSpec(resources=["pods"]))

    assert clusters.created == ["a"]
    assert clusters.clients["a"].closed is True


def test_incomplete_context_is_recorded(clusters, store, k8s_item):
    """测试配置不完整的上下文记为不可达，其他集群照常同步"""
    clusters.add("dev", resources={PODS: _pods(k8s_item, "dev", 2)})
    clusters.connections.append(
        ClusterConnection(context_name="broken", cluster_name="missing", server="", invalid_reason="上下文引用的集群不存在: missing")
    )

    report = _run(clusters, StoreSink(store), SyncSpec(resources=["pods"]))

    assert store.count(ResourceKind.PODS) == 2
    results = {c.context: c for c in report.clusters}
    assert results["broken"].status == "unreachable"
    assert [(k.kind, k.status) for k in results["broken"].kinds] == [(ResourceKind.PODS, "skipped")]
    assert results["dev"].status == "ok"
    [issue] = report.issues
    assert (issue.context, issue.error_type) == ("broken", "ClusterConnectionError")
    assert "broken" not in clusters.created


def test_malformed_object_only_fails_its_kind(clusters, store, k8s_item):
    """测试单个对象格式错误只影响该集群的该资源类型"""
    a = clusters.add(
        "a",
        resources={
            NAMESPACES: [k8s_item("a-ns-1", "default")],
            PODS: [k8s_item("a-pod-1", "web-0", namespace="default", created="not-a-time")],
        },
    )
    b = clusters.add("b", resources={PODS: _pods(k8s_item, "b", 1)})

    report = _run(clusters, StoreSink(store), SyncSpec(resources=["namespaces", "pods"]))

    assert store.count(ResourceKind.PODS, cluster_uid=a.cluster_uid) == 0
    assert store.count(ResourceKind.NAMESPACES, cluster_uid=a.cluster_uid) == 1
    assert store.count(ResourceKind.PODS, cluster_uid=b.cluster_uid) == 1
    results = {c.context: c for c in report.clusters}
    assert results["a"].status == "partial"
    assert results["b"].status == "ok"
    [issue] = report.issues
    assert (issue.context, issue.kind, issue.error_type) == ("a", "pods", "TransientFetchError")


def test_message_sink_honors_host_excluded_cluster_table(clusters, k8s_item):
    """测试宿主排除集群表时不发送集群表定义和占位行"""
    clusters.add("dev", resources={NAMESPACES: [k8s_item("ns-1", "default")]})
    sink = MessageSink()

    _run(clusters, sink, table_options=TableOptions(tables=["k8s_namespaces"]))

    assert [m.table.name for m in sink.messages if isinstance(m, MigrateTableMessage)] == ["k8s_namespaces"]
    assert [m.table for m in sink.messages if isinstance(m, InsertMessage)] == ["k8s_namespaces"]


def test_store_writes_run_off_event_loop_thread(clusters, k8s_item):
    """测试存储写入在线程池中执行"""

    class RecordingSink(SyncSink):
        def __init__(self):
            self.threads = []

        def ensure_cluster(self, record, context=None):
            self.threads.append(threading.get_ident())

        def write(self, kind, records, context=None):
            self.threads.append(threading.get_ident())
            return len(records)

    clusters.add("dev", resources={PODS: _pods(k8s_item, "dev", 1)})
    sink = RecordingSink()

    _run(clusters, sink, SyncSpec(resources=["pods"]))

    assert len(sink.threads) == 2
    assert threading.get_ident() not in sink.threads


def test_stub_cluster_row_defaults_namespace(clusters, store, engine, k8s_item):
    """测试集群占位行的命名空间缺省值与集群信息一致"""
    clusters.add("dev", namespace="", resources={PODS: _pods(k8s_item, "dev", 1)})

    _run(clusters, StoreSink(store), SyncSpec(resources=["pods"]))

    session = SessionLocal(bind=engine)
    try:
        cluster = session.execute(select(K8sCluster)).scalar_one()
    finally:
        session.close()
    assert cluster.namespace == "default"
    assert cluster.node_count == 0
