"""
Celery worker launcher package.

Reuses the service configuration (`kubesync.config.settings`) and task
definitions (`kubesync.tasks.*`) and starts a worker consuming the sync queue.
"""
