"""
Health Check Script
"""

import sys

import requests
from sqlalchemy import text

from kubesync.config.settings import settings


def check_database():
    """检查数据库连接"""
    try:
        from kubesync.config.database import get_engine
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        print("数据库连接正常")
        return True
    except Exception as e:
        print(f"数据库连接失败: {e}")
        return False


def check_redis():
    """检查Redis连接"""
    try:
        from kubesync.config.redis import get_redis
        get_redis().ping()
        print("Redis连接正常")
        return True
    except Exception as e:
        print(f"Redis连接失败: {e}")
        return False


def check_contexts():
    """检查 Kubernetes 凭证来源"""
    try:
        from kubesync.services.cluster_registry import ClusterRegistry
        names = ClusterRegistry().list_context_names()
        print(f"发现 {len(names)} 个上下文: {', '.join(names)}")
        return True
    except Exception as e:
        print(f"Kubernetes 凭证加载失败: {e}")
        return False


def check_api():
    """检查API服务"""
    try:
        response = requests.get(f"http://{settings.HOST}:{settings.PORT}/health", timeout=5)
        response.raise_for_status()
        print("API服务正常")
        return True
    except Exception as e:
        print(f"API服务失败: {e}")
        return False


def main():
    """主函数"""
    print("开始健康检查...")

    checks = [
        ("数据库", check_database),
        ("Redis", check_redis),
        ("Kubernetes 上下文", check_contexts),
        ("API服务", check_api),
    ]

    results = []
    for name, check_func in checks:
        print(f"检查 {name}...")
        results.append((name, check_func()))

    print("\n健康检查结果:")
    for name, result in results:
        status = "✓" if result else "✗"
        print(f"{status} {name}")

    failed_count = sum(1 for _, result in results if not result)
    sys.exit(failed_count)


if __name__ == "__main__":
    main()
