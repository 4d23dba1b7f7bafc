"""
Celery App Configuration
"""

import os
import sys

from celery import Celery
from kubesync.config.settings import settings
from kubesync.core.logging import logger

# 创建Celery应用
celery_app = Celery(
    "kubesync",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "kubesync.tasks.sync_tasks",
    ]
)


def _is_celery_environment() -> bool:
    """检查是否在 Celery Worker/Beat 环境中运行"""
    if any("celery" in arg.lower() and ("worker" in arg.lower() or "beat" in arg.lower()) for arg in sys.argv):
        return True
    if os.getenv("CELERY_AUTOSTART", "").lower() == "true":
        return True
    return "celery_worker" in sys.modules


# Celery配置
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30分钟
    task_soft_time_limit=25 * 60,  # 25分钟
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    # 任务完成后才确认，worker 异常退出时任务会被重新投递（同步是幂等的）
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_connection_retry_on_startup=False,
    task_routes={
        "kubesync.tasks.sync_tasks.*": {"queue": "sync"},
    },
    task_default_priority=settings.CELERY_TASK_PRIORITY_DEFAULT,
)

celery_app.conf.beat_schedule = {}

if settings.SYNC_ENABLE_SCHEDULE:
    celery_app.conf.beat_schedule["kubesync-cluster-sync"] = {
        "task": "kubesync.tasks.sync_tasks.sync_clusters",
        "schedule": settings.SYNC_INTERVAL_SECONDS,
        "options": {
            "expires": settings.SYNC_INTERVAL_SECONDS,  # 过期未执行则丢弃，避免积压
        },
    }
    if _is_celery_environment():
        logger.info(
            f"Celery Beat 已启用集群同步: 间隔={settings.SYNC_INTERVAL_SECONDS}秒 "
            f"({settings.SYNC_INTERVAL_SECONDS / 60:.1f}分钟), broker={settings.REDIS_URL}"
        )
elif _is_celery_environment():
    logger.info("Celery Beat: SYNC_ENABLE_SCHEDULE=False，已禁用定时同步")
