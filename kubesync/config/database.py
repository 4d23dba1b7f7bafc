"""
Database Configuration
"""

from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from kubesync.config.settings import settings
from kubesync.core.exceptions import ConfigurationError

Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite 默认不启用外键约束，级联删除依赖此设置
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, echo: Optional[bool] = None) -> Engine:
    """根据数据库地址创建引擎"""
    if not database_url:
        raise ConfigurationError("DATABASE_URL is not set")

    kwargs = {
        "echo": settings.DATABASE_ECHO if echo is None else echo,
        "future": True,
    }
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = settings.DATABASE_POOL_PRE_PING

    engine = create_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


@lru_cache(maxsize=8)
def get_engine(database_url: Optional[str] = None) -> Engine:
    """获取（缓存的）数据库引擎"""
    return create_db_engine(database_url or settings.DATABASE_URL)
