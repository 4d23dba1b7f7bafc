"""
Database Initialization Script
"""

import sys

from kubesync.config.database import Base, create_db_engine
from kubesync.config.settings import settings
from kubesync.core.exceptions import SchemaError
from kubesync.services.store_service import SyncStore
import kubesync.models  # noqa: F401


def init_database(database_url: str = None) -> bool:
    """创建同步表"""
    try:
        store = SyncStore.from_url(database_url or settings.DATABASE_URL)
        store.ensure_schema()
        print("数据库初始化成功")
        return True
    except SchemaError as e:
        print(f"数据库初始化失败: {e.message}")
        return False


def drop_database(database_url: str = None) -> bool:
    """删除同步表"""
    try:
        engine = create_db_engine(database_url or settings.DATABASE_URL)
        Base.metadata.drop_all(bind=engine)
        print("数据库删除成功")
        return True
    except Exception as e:  # pylint: disable=broad-except
        print(f"数据库删除失败: {e}")
        return False


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "drop":
        ok = drop_database()
    else:
        ok = init_database()
    sys.exit(0 if ok else 1)
