"""
Logging Configuration
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional, Any, Mapping

from kubesync.config.settings import settings


class CredentialFieldFilter(logging.Filter):
    """
    屏蔽日志中的凭证字段，避免 token / 私钥等敏感信息落盘。
    会将以下键名的值替换为占位符：token, client-key-data, password, Authorization。
    """

    SENSITIVE_KEYS = {
        "token",
        "auth_token",
        "client-key-data",
        "client_key_data",
        "password",
        "authorization",
        "Authorization",
    }
    _BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+")

    def _redact_obj(self, obj: Any):
        if isinstance(obj, Mapping):
            return {
                k: "<redacted>" if k in self.SENSITIVE_KEYS else self._redact_obj(v)
                for k, v in obj.items()
            }
        if isinstance(obj, str):
            return self._BEARER_PATTERN.sub(r"\1<redacted>", obj)
        return obj

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, (Mapping, str)):
            record.msg = self._redact_obj(record.msg)
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(self._redact_obj(a) for a in record.args)
        return True


def _tune_external_loggers():
    # 降低第三方库噪音，防止请求头（含 token）被打印
    for name in (
        "httpx",
        "httpcore",
        "urllib3",
        "sqlalchemy",
        "sqlalchemy.engine",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None
):
    """
    配置日志系统

    Args:
        log_level: 日志级别（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_file: 日志文件路径
        log_format: 日志格式
    """
    level = log_level or settings.LOG_LEVEL
    log_path = log_file or settings.LOG_FILE
    fmt = log_format or settings.LOG_FORMAT

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # 清除由本函数添加过的处理器，重复调用时不会重复输出
    root_logger.handlers = [
        h for h in root_logger.handlers if not getattr(h, "_kubesync_handler", False)
    ]

    credential_filter = CredentialFieldFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(fmt))
    console_handler.addFilter(credential_filter)
    console_handler._kubesync_handler = True
    root_logger.addHandler(console_handler)

    if log_path:
        try:
            log_file_path = Path(log_path)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(fmt))
            file_handler.addFilter(credential_filter)
            file_handler._kubesync_handler = True
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning(f"无法创建日志文件 {log_path}: {e}")

    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('celery').setLevel(logging.INFO)

    _tune_external_loggers()


# 初始化日志
setup_logging()

# 创建全局日志记录器
logger = logging.getLogger('kubesync')
