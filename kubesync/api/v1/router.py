"""
API Router Configuration
"""

from fastapi import APIRouter
from kubesync.api.v1.routes import sync

# 创建API路由器
api_router = APIRouter()

api_router.include_router(
    sync.router,
    prefix="/sync",
    tags=["集群同步"]
)
