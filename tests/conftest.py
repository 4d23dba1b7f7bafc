"""
Test Configuration
"""

import pytest
from fastapi.testclient import TestClient

from kubesync.config.database import create_db_engine
from kubesync.core.exceptions import TransientFetchError
from kubesync.services.cluster_registry import ClusterRegistry
from kubesync.services.kubeconfig_loader import ClusterConnection
from kubesync.services.store_service import SyncStore
import kubesync.models  # noqa: F401


def _k8s_item(uid, name, namespace=None, spec=None, status=None, created="2024-05-01T08:00:00Z"):
    """构造最小的 Kubernetes 对象"""
    metadata = {"uid": uid, "name": name, "creationTimestamp": created}
    if namespace:
        metadata["namespace"] = namespace
    return {"metadata": metadata, "spec": spec or {}, "status": status or {}}


def _fetch_error(status_code=500, context=None, kind=None):
    return TransientFetchError(f"HTTP 错误 {status_code}", context=context, kind=kind, status_code=status_code)


class FakeKubeClient:
    """按路径返回预置对象或抛出预置错误的 API 客户端"""

    def __init__(self, connection, resources=None, errors=None, version="v1.29.2", version_error=None):
        self.connection = connection
        self.resources = resources or {}
        self.errors = errors or {}
        self.version = version
        self.version_error = version_error
        self.calls = []
        self.closed = False

    async def server_version(self):
        if self.version_error is not None:
            raise self.version_error
        return self.version

    async def list_items(self, path, kind=None):
        self.calls.append(path)
        if path in self.errors:
            raise self.errors[path]
        for item in self.resources.get(path, []):
            yield item

    async def aclose(self):
        self.closed = True


class FakeClusterSet:
    """一组模拟集群：提供注册表和注入同步引擎的客户端工厂"""

    def __init__(self):
        self.connections = []
        self.options = {}
        self.clients = {}
        self.created = []

    def add(
        self,
        context,
        server=None,
        resources=None,
        errors=None,
        version="v1.29.2",
        version_error=None,
        connect_error=None,
        namespace="default",
    ):
        connection = ClusterConnection(
            context_name=context,
            cluster_name=f"{context}-cluster",
            server=server or f"https://{context}.example.com:6443",
            namespace=namespace,
        )
        self.connections.append(connection)
        self.options[context] = {
            "resources": resources or {},
            "errors": errors or {},
            "version": version,
            "version_error": version_error,
            "connect_error": connect_error,
        }
        return connection

    @property
    def registry(self):
        return ClusterRegistry(connections=self.connections)

    def factory(self, connection):
        options = dict(self.options[connection.context_name])
        connect_error = options.pop("connect_error")
        self.created.append(connection.context_name)
        if connect_error is not None:
            raise connect_error
        client = FakeKubeClient(connection, **options)
        self.clients[connection.context_name] = client
        return client


@pytest.fixture
def k8s_item():
    return _k8s_item


@pytest.fixture
def fetch_error():
    return _fetch_error


@pytest.fixture
def fake_client_class():
    return FakeKubeClient


@pytest.fixture
def clusters():
    return FakeClusterSet()


@pytest.fixture
def engine():
    """每个测试独立的内存数据库（启用外键）"""
    db_engine = create_db_engine("sqlite://", echo=False)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def store(engine):
    sync_store = SyncStore(engine)
    sync_store.ensure_schema()
    return sync_store


@pytest.fixture
def client():
    """创建测试客户端"""
    from kubesync.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
