"""
Routes for triggering cluster sync and describing the synced tables.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from kubesync.config.settings import settings
from kubesync.core.logging import logger
from kubesync.dependencies.sync import get_client_factory, get_cluster_registry
from kubesync.schemas.sync import SyncRunRequest, TableOptions
from kubesync.services.cluster_registry import ClusterRegistry
from kubesync.services.sync_service import run_sync
from kubesync.services.table_service import table_definitions

router = APIRouter()


@router.get("/tables", response_model=dict)
async def list_tables(
    tables: Optional[List[str]] = Query(None),
    skip_tables: Optional[List[str]] = Query(None),
):
    """同步表定义（支持宿主表过滤）"""
    options = TableOptions(tables=tables or [], skip_tables=skip_tables or [])
    items = [d.model_dump() for d in table_definitions(options)]
    return {"code": 0, "message": "ok", "data": {"list": items, "total": len(items)}}


@router.get("/contexts", response_model=dict)
async def list_contexts(registry: ClusterRegistry = Depends(get_cluster_registry)):
    """已发现的上下文（不含凭证）"""
    items = [c.describe() for c in registry.list_contexts()]
    return {"code": 0, "message": "ok", "data": {"list": items, "total": len(items)}}


@router.post("/runs", response_model=dict)
async def trigger_sync(
    request: SyncRunRequest,
    registry: ClusterRegistry = Depends(get_cluster_registry),
    client_factory=Depends(get_client_factory),
):
    """触发一次同步：默认同步执行并返回报告，background=true 时投递 Celery 任务"""
    if request.background:
        from kubesync.tasks.sync_tasks import sync_clusters

        task = sync_clusters.apply_async(
            kwargs={
                "spec": request.to_spec(),
                "tables": request.tables,
                "skip_tables": request.skip_tables,
            },
            priority=settings.CELERY_TASK_PRIORITY_SYNC,
        )
        logger.info(f"同步任务已投递: task_id={task.id}")
        return {"code": 0, "message": "accepted", "data": {"task_id": task.id}}

    report = await run_sync(
        request.to_spec(),
        table_options=request.table_options(),
        registry=registry,
        client_factory=client_factory,
    )
    return {"code": 0, "message": "ok", "data": report.model_dump(mode="json")}
