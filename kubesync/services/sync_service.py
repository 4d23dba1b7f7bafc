"""
Cluster Sync Service

同步引擎：解析范围 → 逐集群连接 → 逐资源类型拉取并 upsert。
单个集群不可达只跳过该集群，单个资源类型失败只跳过该类型；
只有配置错误、建表失败和数据库整体不可用会终止本次运行。
"""

import asyncio
import functools
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from kubesync.core.constants import ResourceKind
from kubesync.core.exceptions import (
    ClusterConnectionError,
    CustomException,
    NotFoundError,
    PersistenceError,
    StoreUnavailableError,
    TransientFetchError,
)
from kubesync.core.logging import logger
from kubesync.config.settings import settings
from kubesync.schemas.sync import (
    ClusterResult,
    KindResult,
    SelectionConfig,
    SyncIssue,
    SyncReport,
    SyncSpec,
    TableOptions,
)
from kubesync.services.cluster_registry import ClusterRegistry
from kubesync.services.kube_client import KubeApiClient
from kubesync.services.kubeconfig_loader import ClusterConnection
from kubesync.services.resource_providers import PROVIDERS, ResourceProvider, cluster_info_row
from kubesync.services.selection_service import SelectionFilter, load_sync_spec
from kubesync.services.sink import StoreSink, SyncSink
from kubesync.services.store_service import SyncStore

ClientFactory = Callable[[ClusterConnection], KubeApiClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClusterSyncService:
    """多集群同步引擎"""

    def __init__(
        self,
        registry: ClusterRegistry,
        sink: SyncSink,
        selection_filter: Optional[SelectionFilter] = None,
        providers: Optional[Dict[ResourceKind, ResourceProvider]] = None,
        client_factory: Optional[ClientFactory] = None,
        max_concurrency: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.sink = sink
        self.selection_filter = selection_filter or SelectionFilter()
        self.providers = providers or PROVIDERS
        self.client_factory = client_factory or KubeApiClient.from_connection
        self.max_concurrency = max(1, max_concurrency or settings.SYNC_MAX_CONCURRENT_CLUSTERS)
        self.clock = clock

    async def run(
        self,
        spec: SyncSpec,
        table_options: Optional[TableOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        """
        执行一次同步

        Raises:
            ConfigurationError: 配置非法或没有凭证来源
            SchemaError: 建表失败
            StoreUnavailableError: 数据库不可用
        """
        report = SyncReport(started_at=self.clock())
        selection = self.selection_filter.resolve(
            spec, self.registry.list_context_names(), table_options
        )
        kinds = selection.ordered_kinds()
        logger.info(
            f"开始同步: 上下文={selection.ordered_clusters()}, 资源类型={[k.value for k in kinds]}"
        )

        self.sink.begin(kinds, excluded_kinds=selection.excluded_kinds)
        groups = self._group_clusters(selection, report)

        if self.max_concurrency <= 1:
            for connection, aliases in groups:
                if cancel_event is not None and cancel_event.is_set():
                    report.cancelled = True
                    break
                await self._sync_cluster(connection, aliases, selection, report)
        else:
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def _guarded(connection: ClusterConnection, aliases: List[str]) -> None:
                async with semaphore:
                    if cancel_event is not None and cancel_event.is_set():
                        report.cancelled = True
                        return
                    await self._sync_cluster(connection, aliases, selection, report)

            await asyncio.gather(*(_guarded(c, a) for c, a in groups))

        self.sink.finish()
        report.finished_at = self.clock()
        if report.cancelled:
            logger.warning("同步已被取消，剩余集群未处理")
        logger.info(f"同步结束: {report.summary()}")
        return report

    def _group_clusters(
        self, selection: SelectionConfig, report: SyncReport
    ) -> List[Tuple[ClusterConnection, List[str]]]:
        """按集群标识归并上下文：同一 API Server 只同步一次，其余上下文记为别名"""
        groups: Dict[str, Tuple[ClusterConnection, List[str]]] = {}
        for name in selection.ordered_clusters():
            try:
                connection = self.registry.resolve(name)
            except NotFoundError as e:
                logger.warning(f"上下文不存在，已跳过: 上下文={name}")
                result = ClusterResult(context=name, status="not_found")
                report.clusters.append(result)
                self._record(report, e, context=name)
                continue
            except ClusterConnectionError as e:
                result = ClusterResult(context=name)
                report.clusters.append(result)
                self._mark_unreachable(report, result, e, selection.ordered_kinds())
                continue

            uid = connection.cluster_uid
            if uid in groups:
                groups[uid][1].append(name)
                logger.info(f"上下文指向已同步的集群，归并为别名: 上下文={name}, 集群={groups[uid][0].context_name}")
            else:
                groups[uid] = (connection, [])
        return list(groups.values())

    async def _sync_cluster(
        self,
        connection: ClusterConnection,
        aliases: List[str],
        selection: SelectionConfig,
        report: SyncReport,
    ) -> None:
        context = connection.context_name
        uid = connection.cluster_uid
        result = ClusterResult(context=context, cluster_uid=uid, aliases=aliases)
        report.clusters.append(result)
        kinds = selection.ordered_kinds()
        synced_at = self.clock()

        try:
            client = self.client_factory(connection)
        except ClusterConnectionError as e:
            self._mark_unreachable(report, result, e, kinds)
            return

        try:
            try:
                await client.server_version()
            except ClusterConnectionError as e:
                self._mark_unreachable(report, result, e, kinds)
                return
            except TransientFetchError as e:
                # 版本读取属于尽力而为，由集群信息 Provider 计入降级
                logger.debug(f"版本探测失败，继续同步: 上下文={context}, 错误={e.message}")

            if kinds and ResourceKind.CLUSTERS not in kinds:
                stub = cluster_info_row(connection).to_record(uid, context, synced_at)
                try:
                    await self._call_sink(self.sink.ensure_cluster, stub, context=context)
                except StoreUnavailableError:
                    raise
                except PersistenceError as e:
                    result.status = "error"
                    self._record(report, e, context=context, cluster_uid=uid)
                    return

            for index, kind in enumerate(kinds):
                try:
                    written = await self._sync_kind(client, connection, kind, synced_at, report, result)
                    result.kinds.append(KindResult(kind=kind, rows=written))
                except ClusterConnectionError as e:
                    # 集群中途不可达：剩余资源类型全部跳过
                    self._mark_unreachable(report, result, e, kinds[index:], kind=kind)
                    break
                except TransientFetchError as e:
                    logger.error(
                        f"Resource sync failed: 集群={context}, 资源类型={kind.value}, 错误={e.message}"
                    )
                    result.kinds.append(KindResult(kind=kind, status="error", error=e.message))
                    self._record(report, e, context=context, cluster_uid=uid, kind=kind)
                except StoreUnavailableError:
                    raise
                except PersistenceError as e:
                    result.kinds.append(KindResult(kind=kind, status="error", error=e.message))
                    self._record(report, e, context=context, cluster_uid=uid, kind=kind)
        finally:
            await client.aclose()

        if result.status == "ok" and any(k.status != "ok" for k in result.kinds):
            result.status = "partial"
        logger.info(
            f"集群同步完成: 上下文={context}, 状态={result.status}, "
            f"行数={sum(k.rows for k in result.kinds)}, 降级={result.degraded_reads}"
        )

    async def _sync_kind(
        self,
        client: KubeApiClient,
        connection: ClusterConnection,
        kind: ResourceKind,
        synced_at: datetime,
        report: SyncReport,
        result: ClusterResult,
    ) -> int:
        provider = self.providers[kind]
        context = connection.context_name
        uid = connection.cluster_uid
        degraded = []

        # 先完整拉取再一次性写入，拉取失败时该类型不会留下部分行
        records = {}
        async for row in provider.list(client, connection, degraded):
            records[row.native_id] = row.to_record(uid, context, synced_at)

        for error in degraded:
            result.degraded_reads += 1
            self._record(report, error, context=context, cluster_uid=uid, kind=kind)

        written = await self._call_sink(self.sink.write, kind, list(records.values()), context=context)
        logger.info(f"资源同步完成: 集群={context}, 资源类型={kind.value}, 行数={written}")
        return written

    @staticmethod
    async def _call_sink(func, *args, **kwargs):
        # 存储写入是阻塞调用，放到线程池执行，避免阻塞事件循环
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    def _mark_unreachable(
        self,
        report: SyncReport,
        result: ClusterResult,
        error: ClusterConnectionError,
        skipped: List[ResourceKind],
        kind: Optional[ResourceKind] = None,
    ) -> None:
        logger.error(f"集群不可达，已跳过: 上下文={result.context}, 错误={error.message}")
        result.status = "unreachable"
        for k in skipped:
            result.kinds.append(KindResult(kind=k, status="skipped", error=error.message))
        self._record(report, error, context=result.context, cluster_uid=result.cluster_uid, kind=kind)

    @staticmethod
    def _record(
        report: SyncReport,
        error: CustomException,
        context: Optional[str] = None,
        cluster_uid: Optional[str] = None,
        kind: Optional[ResourceKind] = None,
    ) -> None:
        kind_value = kind.value if kind is not None else getattr(error, "kind", None)
        report.issues.append(
            SyncIssue(
                context=context,
                cluster_uid=cluster_uid,
                kind=kind_value,
                error_type=type(error).__name__,
                code=error.code,
                message=error.message,
            )
        )


def build_store_sink(spec: SyncSpec) -> StoreSink:
    return StoreSink(SyncStore.from_url(spec.database_url))


async def run_sync(
    raw_spec=None,
    table_options: Optional[TableOptions] = None,
    sink: Optional[SyncSink] = None,
    registry: Optional[ClusterRegistry] = None,
    client_factory: Optional[ClientFactory] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> SyncReport:
    """
    便捷入口：解析配置并执行一次同步；未指定 sink 时写入 database_url 对应的数据库
    """
    spec = load_sync_spec(raw_spec, require_database=sink is None)
    service = ClusterSyncService(
        registry=registry or ClusterRegistry(),
        sink=sink or build_store_sink(spec),
        client_factory=client_factory,
    )
    return await service.run(spec, table_options=table_options, cancel_event=cancel_event)
