"""
Redis Configuration
"""

import redis
from kubesync.config.settings import settings


def get_redis() -> redis.Redis:
    """获取Redis客户端（Celery broker 连通性检查用）"""
    return redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
