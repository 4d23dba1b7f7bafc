"""
Celery worker launcher.

Usage:
  python -m celery_worker.worker            # worker only
  python -m celery_worker.worker --beat     # worker with embedded beat (定时同步)

Environment (optional):
  CELERY_LOG_LEVEL=INFO|DEBUG
  CELERY_CONCURRENCY=1
  CELERY_QUEUES=sync,celery
"""

from __future__ import annotations

import logging
import os
import sys

# Ensure project root is on sys.path when running from celery_worker directory
_current_dir = os.path.dirname(os.path.abspath(__file__))
_project_root = os.path.dirname(_current_dir)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from kubesync.config.settings import settings
from kubesync.tasks.celery_app import celery_app

DEFAULT_QUEUES = "sync,celery"


def build_worker_argv(embed_beat: bool = False) -> list:
    log_level = (settings.CELERY_LOG_LEVEL or os.getenv("CELERY_LOG_LEVEL", "INFO")).lower()
    queues = os.getenv("CELERY_QUEUES") or DEFAULT_QUEUES
    pool = "solo" if os.name == "nt" else "prefork"

    if settings.CELERY_CONCURRENCY is not None:
        concurrency = str(settings.CELERY_CONCURRENCY)
    else:
        # 同步任务以 I/O 为主，少量进程即可
        concurrency = str(max(1, min(4, os.cpu_count() or 1)))

    argv = [
        "worker",
        "-l",
        log_level,
        "-Q",
        queues,
        "-c",
        concurrency,
        "--pool",
        pool,
        "--without-gossip",
        "--without-mingle",
    ]
    if embed_beat and settings.SYNC_ENABLE_SCHEDULE:
        argv.append("--beat")
    return argv


def main() -> None:
    argv = build_worker_argv(embed_beat="--beat" in sys.argv[1:])
    logging.getLogger("celery").info(
        f"🚀 Celery Worker 启动参数: {' '.join(argv)}, Redis: {settings.REDIS_URL}"
    )
    try:
        celery_app.worker_main(argv)
    except SystemExit as exc:
        sys.exit(exc.code)


if __name__ == "__main__":
    main()
