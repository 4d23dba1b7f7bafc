"""
Exceptions and Exception Handlers
"""

from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

logger = logging.getLogger(__name__)


class ErrorCode:
    """错误代码定义"""
    # 配置错误
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    CONTEXT_NOT_FOUND = "CONTEXT_NOT_FOUND"

    # 集群访问错误
    CLUSTER_UNREACHABLE = "CLUSTER_UNREACHABLE"
    RESOURCE_FETCH_FAILED = "RESOURCE_FETCH_FAILED"
    DEGRADED_READ = "DEGRADED_READ"

    # 存储错误
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    SCHEMA_FAILED = "SCHEMA_FAILED"


class CustomException(Exception):
    """自定义异常类"""
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(self.message)


class ConfigurationError(CustomException):
    """同步配置缺失或非法，在任何拉取之前终止本次同步"""

    def __init__(self, message: str):
        super().__init__(ErrorCode.CONFIGURATION_ERROR, message)


class NotFoundError(CustomException):
    def __init__(self, message: str):
        super().__init__(ErrorCode.CONTEXT_NOT_FOUND, message)


class ClusterScopedError(CustomException):
    """带集群/资源类型上下文的可恢复错误"""

    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[str] = None,
        kind: Optional[str] = None,
    ):
        super().__init__(code, message)
        self.context = context
        self.kind = kind


class ClusterConnectionError(ClusterScopedError):
    """集群不可达或凭证无效：跳过该集群"""

    def __init__(self, message: str, context: Optional[str] = None, kind: Optional[str] = None):
        super().__init__(ErrorCode.CLUSTER_UNREACHABLE, message, context, kind)


class TransientFetchError(ClusterScopedError):
    """某资源类型的 list 调用失败：跳过该集群的该资源类型"""

    def __init__(
        self,
        message: str,
        context: Optional[str] = None,
        kind: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(ErrorCode.RESOURCE_FETCH_FAILED, message, context, kind)
        self.status_code = status_code


class DegradedReadError(ClusterScopedError):
    """尽力而为的补充信息读取失败，调用方使用默认值继续"""

    def __init__(self, message: str, context: Optional[str] = None, kind: Optional[str] = None, field: str = ""):
        super().__init__(ErrorCode.DEGRADED_READ, message, context, kind)
        self.field = field


class PersistenceError(ClusterScopedError):
    def __init__(self, message: str, context: Optional[str] = None, kind: Optional[str] = None):
        super().__init__(ErrorCode.PERSISTENCE_FAILED, message, context, kind)


class StoreUnavailableError(PersistenceError):
    """存储整体不可用，终止本次同步"""

    def __init__(self, message: str, context: Optional[str] = None, kind: Optional[str] = None):
        super().__init__(message, context, kind)
        self.code = ErrorCode.STORE_UNAVAILABLE


class SchemaError(CustomException):
    def __init__(self, message: str):
        super().__init__(ErrorCode.SCHEMA_FAILED, message)


_STATUS_BY_CODE = {
    ErrorCode.CONFIGURATION_ERROR: 400,
    ErrorCode.CONTEXT_NOT_FOUND: 404,
    ErrorCode.CLUSTER_UNREACHABLE: 502,
    ErrorCode.RESOURCE_FETCH_FAILED: 502,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


def setup_exception_handlers(app: FastAPI):
    """设置异常处理器"""

    @app.exception_handler(CustomException)
    async def custom_exception_handler(request: Request, exc: CustomException):
        """业务异常处理器"""
        return JSONResponse(
            status_code=_STATUS_BY_CODE.get(exc.code, 500),
            content={
                "error": True,
                "code": exc.code,
                "message": exc.message,
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """HTTP异常处理器"""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": exc.detail,
                "status_code": exc.status_code
            }
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """请求验证异常处理器"""
        return JSONResponse(
            status_code=422,
            content={
                "error": True,
                "message": "请求参数验证失败",
                "details": exc.errors()
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """通用异常处理器"""
        logger.error(f"未处理的异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": True,
                "message": "服务器内部错误",
                "status_code": 500
            }
        )
