"""
Celery tasks for cluster inventory sync.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from kubesync.config.settings import settings
from kubesync.core.logging import logger
from kubesync.schemas.sync import TableOptions
from kubesync.services.sync_service import run_sync
from kubesync.tasks.celery_app import celery_app

# 确保模型在 Celery 进程中注册
import kubesync.models  # noqa: F401


@celery_app.task(
    name="kubesync.tasks.sync_tasks.sync_clusters",
    priority=settings.CELERY_TASK_PRIORITY_SYNC,
)
def sync_clusters(
    spec: Optional[Dict[str, Any]] = None,
    tables: Optional[List[str]] = None,
    skip_tables: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """执行一次集群同步，返回运行报告（JSON）。"""
    table_options = None
    if tables or skip_tables:
        table_options = TableOptions(tables=tables or [], skip_tables=skip_tables or [])

    report = asyncio.run(run_sync(spec, table_options=table_options))

    summary = report.summary()
    if report.issues:
        logger.warning(
            f"定时同步任务完成（有错误）: 集群数={summary['clusters']}, 行数={summary['rows']}, "
            f"错误数={summary['issues']}, 降级={summary['degraded_reads']}"
        )
        for issue in report.issues:
            logger.warning(
                f"  上下文={issue.context}, 资源类型={issue.kind}, 错误类型={issue.error_type}, 信息={issue.message}"
            )
    else:
        logger.info(f"定时同步任务完成: 集群数={summary['clusters']}, 行数={summary['rows']}")
    return report.model_dump(mode="json")
