"""
Sync Store

关系型存储：建表与按复合主键 upsert。
PostgreSQL / SQLite 使用 ON CONFLICT DO UPDATE，MySQL 使用 ON DUPLICATE KEY UPDATE，
其他方言退回 Session.merge。每次 upsert 调用在一个事务内完成。
"""

import threading
from contextlib import nullcontext
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError

from kubesync.config.database import Base, SessionLocal, create_db_engine
from kubesync.config.settings import settings
from kubesync.core.constants import SYNC_ORDER, ResourceKind
from kubesync.core.exceptions import PersistenceError, SchemaError, StoreUnavailableError
from kubesync.core.logging import logger
from kubesync.models import MODELS_BY_KIND

# 冲突更新时保留首次写入值的列
_PRESERVED_ON_CONFLICT = {
    ResourceKind.CLUSTERS: {"created_at"},
}


class SyncStore:
    """同步目标存储"""

    def __init__(self, engine: Engine, batch_size: Optional[int] = None):
        self.engine = engine
        self.batch_size = batch_size or settings.SYNC_UPSERT_BATCH_SIZE
        # 写入在线程池中执行；SQLite 只允许单写者，写入串行化
        self._write_lock = threading.Lock() if self.dialect == "sqlite" else nullcontext()

    @classmethod
    def from_url(cls, database_url: str, batch_size: Optional[int] = None) -> "SyncStore":
        return cls(create_db_engine(database_url), batch_size=batch_size)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def ensure_schema(self, kinds: Optional[Iterable[ResourceKind]] = None) -> None:
        """
        创建同步表（已存在则跳过）；集群表总会被创建，其他表通过外键引用它

        Raises:
            SchemaError: DDL 执行失败
        """
        selected = set(kinds) if kinds is not None else set(SYNC_ORDER)
        selected.add(ResourceKind.CLUSTERS)
        tables = [MODELS_BY_KIND[k].__table__ for k in SYNC_ORDER if k in selected]
        try:
            Base.metadata.create_all(bind=self.engine, tables=tables)
        except SQLAlchemyError as e:
            logger.error(f"建表失败: {e}", exc_info=True)
            raise SchemaError(f"建表失败: {e}") from e

    def ensure_cluster(self, record: Dict[str, Any], context: Optional[str] = None) -> bool:
        """
        集群行不存在时插入（存在则不修改），保证资源行的外键成立

        Returns:
            bool: 是否新插入
        """
        table = MODELS_BY_KIND[ResourceKind.CLUSTERS].__table__
        with self._write_lock:
            return self._ensure_cluster(table, record, context)

    def _ensure_cluster(self, table, record: Dict[str, Any], context: Optional[str]) -> bool:
        session = SessionLocal(bind=self.engine)
        try:
            if self.dialect in ("postgresql", "sqlite"):
                stmt = self._dialect_insert(table).values(**record).on_conflict_do_nothing(
                    index_elements=["cluster_uid"]
                )
                inserted = session.execute(stmt).rowcount > 0
            elif self.dialect == "mysql":
                stmt = table.insert().prefix_with("IGNORE").values(**record)
                inserted = session.execute(stmt).rowcount > 0
            else:
                model = MODELS_BY_KIND[ResourceKind.CLUSTERS]
                inserted = session.get(model, record["cluster_uid"]) is None
                if inserted:
                    session.add(model(**record))
            session.commit()
            return inserted
        except SQLAlchemyError as e:
            session.rollback()
            raise self._wrap_error(e, ResourceKind.CLUSTERS, context) from e
        finally:
            session.close()

    def upsert(self, kind: ResourceKind, records: Sequence[Dict[str, Any]], context: Optional[str] = None) -> int:
        """
        批量 upsert 某资源类型的行（整体一个事务，失败则该类型不落任何行）

        Raises:
            PersistenceError: 约束冲突等写入失败
            StoreUnavailableError: 数据库连接不可用
        """
        if not records:
            return 0
        model = MODELS_BY_KIND[kind]
        table = model.__table__
        key_columns = [c.name for c in table.primary_key.columns]

        with self._write_lock:
            session = SessionLocal(bind=self.engine)
            try:
                stmt = self._build_upsert(kind, table, key_columns)
                for start in range(0, len(records), self.batch_size):
                    batch = list(records[start:start + self.batch_size])
                    if stmt is not None:
                        session.execute(stmt, batch)
                    else:
                        for record in batch:
                            session.merge(model(**record))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._wrap_error(e, kind, context) from e
            finally:
                session.close()

        logger.debug(f"upsert 完成: 表={table.name}, 行数={len(records)}")
        return len(records)

    def count(self, kind: ResourceKind, cluster_uid: Optional[str] = None) -> int:
        model = MODELS_BY_KIND[kind]
        query = select(func.count()).select_from(model)
        if cluster_uid is not None:
            query = query.where(model.cluster_uid == cluster_uid)
        session = SessionLocal(bind=self.engine)
        try:
            return session.execute(query).scalar_one()
        finally:
            session.close()

    def _dialect_insert(self, table):
        if self.dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif self.dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            from sqlalchemy.dialects.mysql import insert
        return insert(table)

    def _build_upsert(self, kind: ResourceKind, table, key_columns: List[str]):
        preserved = _PRESERVED_ON_CONFLICT.get(kind, set())
        update_columns = [
            c.name for c in table.columns if c.name not in key_columns and c.name not in preserved
        ]
        if self.dialect in ("postgresql", "sqlite"):
            stmt = self._dialect_insert(table)
            return stmt.on_conflict_do_update(
                index_elements=key_columns,
                set_={name: stmt.excluded[name] for name in update_columns},
            )
        if self.dialect == "mysql":
            stmt = self._dialect_insert(table)
            return stmt.on_duplicate_key_update({name: stmt.inserted[name] for name in update_columns})
        return None

    @staticmethod
    def _wrap_error(exc: SQLAlchemyError, kind: ResourceKind, context: Optional[str]) -> PersistenceError:
        if isinstance(exc, (OperationalError, InterfaceError)) and not isinstance(exc, IntegrityError):
            logger.error(f"数据库不可用: 资源类型={kind.value}, 错误={exc}")
            return StoreUnavailableError(f"数据库不可用: {exc}", context=context, kind=kind.value)
        logger.error(f"写入失败: 上下文={context}, 资源类型={kind.value}, 错误={exc}")
        return PersistenceError(f"写入 {kind.value} 失败: {exc}", context=context, kind=kind.value)
