"""
Configuration Management
"""

from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings  # type: ignore

# 计算项目根目录，确保无论从哪里运行都能找到根目录下的 .env
_CURRENT_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CURRENT_DIR.parent
_PROJECT_ROOT = _PACKAGE_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """应用配置"""

    # 应用配置
    APP_NAME: str = "kubesync"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # 服务器配置
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # 数据库配置（为空时必须在同步配置中显式提供）
    DATABASE_URL: str = ""
    DATABASE_ECHO: bool = False
    DATABASE_POOL_PRE_PING: bool = True

    # Kubernetes 凭证与过滤配置
    # KUBECONFIG 支持多个路径（以 os.pathsep 分隔），为空时使用 ~/.kube/config
    KUBECONFIG: Optional[str] = None
    # 逗号分隔的上下文/资源列表，为空表示全部
    K8S_CONTEXTS: str = ""
    K8S_RESOURCES: str = ""
    K8S_REQUEST_TIMEOUT_SECONDS: float = 15.0
    K8S_CONNECT_TIMEOUT_SECONDS: float = 5.0
    K8S_LIST_PAGE_SIZE: int = 500

    # 同步引擎配置
    SYNC_MAX_CONCURRENT_CLUSTERS: int = 1  # 1 表示逐个集群顺序同步
    SYNC_UPSERT_BATCH_SIZE: int = 500
    SYNC_INTERVAL_SECONDS: int = 300
    SYNC_ENABLE_SCHEDULE: bool = True

    # Redis / Celery 配置
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_LOG_LEVEL: str = "INFO"
    CELERY_CONCURRENCY: Optional[int] = None
    CELERY_TASK_PRIORITY_DEFAULT: int = 5
    CELERY_TASK_PRIORITY_SYNC: int = 3  # K8s 同步任务（低优先级，后台任务）

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = _ENV_FILE
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
