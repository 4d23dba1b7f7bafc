"""
Sync sinks

同步引擎的输出端：直接写入存储（StoreSink），或向插件宿主发送
"表定义 + 行插入"消息（MessageSink）。两者对同步引擎是等价的。
"""

from typing import AbstractSet, Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from kubesync.core.constants import TABLE_NAMES, ResourceKind, SYNC_ORDER
from kubesync.core.logging import logger
from kubesync.schemas.messages import InsertMessage, MigrateTableMessage
from kubesync.services.store_service import SyncStore
from kubesync.services.table_service import table_definition


class SyncSink:
    """输出端接口"""

    def begin(self, kinds: Sequence[ResourceKind], excluded_kinds: AbstractSet[ResourceKind] = frozenset()) -> None:
        """运行开始时调用一次（建表 / 声明表定义）；excluded_kinds 为宿主表过滤排除的类型"""

    def ensure_cluster(self, record: Dict[str, Any], context: Optional[str] = None) -> None:
        raise NotImplementedError

    def write(self, kind: ResourceKind, records: Sequence[Dict[str, Any]], context: Optional[str] = None) -> int:
        raise NotImplementedError

    def finish(self) -> None:
        """运行结束时调用"""


class StoreSink(SyncSink):
    def __init__(self, store: SyncStore):
        self.store = store

    def begin(self, kinds, excluded_kinds=frozenset()):
        # 资源表外键依赖集群表，即使宿主排除了集群表，本地存储仍会建表并写入占位行
        self.store.ensure_schema(kinds)

    def ensure_cluster(self, record, context=None):
        if self.store.ensure_cluster(record, context=context):
            logger.info(f"已插入集群占位行: 上下文={context}, 集群={record.get('cluster_uid')}")

    def write(self, kind, records, context=None):
        return self.store.upsert(kind, records, context=context)


class MessageSink(SyncSink):
    """
    宿主协议输出：每张表先发送一条 MigrateTableMessage，再逐行发送 InsertMessage。
    未提供 emit 时消息保存在 self.messages 中。
    """

    def __init__(self, emit: Optional[Callable[[BaseModel], None]] = None):
        self.messages: List[BaseModel] = []
        self._emit = emit or self.messages.append
        self._declared = set()
        self._excluded = set()

    def begin(self, kinds, excluded_kinds=frozenset()):
        self._excluded = set(excluded_kinds)
        selected = set(kinds)
        if selected and ResourceKind.CLUSTERS not in self._excluded:
            # 资源表外键引用集群表，宿主未排除时集群表始终声明
            selected.add(ResourceKind.CLUSTERS)
        for kind in SYNC_ORDER:
            if kind in selected:
                self._declare(kind)

    def _declare(self, kind: ResourceKind) -> None:
        if kind in self._declared:
            return
        self._emit(MigrateTableMessage(table=table_definition(kind)))
        self._declared.add(kind)

    def ensure_cluster(self, record, context=None):
        if ResourceKind.CLUSTERS in self._excluded:
            logger.debug(f"宿主已排除集群表，不发送占位行: 上下文={context}")
            return
        self._declare(ResourceKind.CLUSTERS)
        self._emit(InsertMessage(table=TABLE_NAMES[ResourceKind.CLUSTERS], record=dict(record)))

    def write(self, kind, records, context=None):
        self._declare(kind)
        table = TABLE_NAMES[kind]
        for record in records:
            self._emit(InsertMessage(table=table, record=dict(record)))
        return len(records)
