"""
Kubernetes API Client

基于 httpx.AsyncClient 的只读 API 访问，并把传输/HTTP 错误映射为同步引擎的错误类型：
连接失败与 401 视为集群不可达，其余失败视为单个资源类型的拉取失败。
"""

import base64
from typing import Any, AsyncIterator, Dict, Optional

import httpx  # type: ignore
from httpx import Timeout

from kubesync.config.settings import settings
from kubesync.core.exceptions import ClusterConnectionError, TransientFetchError
from kubesync.core.logging import logger
from kubesync.services.kubeconfig_loader import ClusterConnection, build_ssl_context


def _default_timeout() -> Timeout:
    return Timeout(settings.K8S_REQUEST_TIMEOUT_SECONDS, connect=settings.K8S_CONNECT_TIMEOUT_SECONDS)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return body.get("message") or body.get("reason") or ""
    return ""


class KubeApiClient:
    """单个集群的 API 客户端，由同步引擎在一次集群同步内独占使用"""

    def __init__(
        self,
        connection: ClusterConnection,
        http_client: httpx.AsyncClient,
        page_size: Optional[int] = None,
    ):
        self.connection = connection
        self._http = http_client
        self.page_size = page_size or settings.K8S_LIST_PAGE_SIZE
        self._server_version: Optional[str] = None

    @classmethod
    def from_connection(
        cls,
        connection: ClusterConnection,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[Timeout] = None,
    ) -> "KubeApiClient":
        """
        根据连接参数构造客户端

        Raises:
            ClusterConnectionError: 凭证或 TLS 配置无法使用
        """
        headers = {"Accept": "application/json"}
        token = connection.read_token()
        creds = connection.credentials
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif creds.username:
            basic = base64.b64encode(f"{creds.username}:{creds.password}".encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {basic}"

        kwargs: Dict[str, Any] = {
            "base_url": connection.server.rstrip("/"),
            "headers": headers,
            "timeout": timeout or _default_timeout(),
            # API Server 通常在内网，不走环境代理
            "trust_env": False,
        }
        if transport is not None:
            kwargs["transport"] = transport
        else:
            kwargs["verify"] = build_ssl_context(connection)
        return cls(connection, httpx.AsyncClient(**kwargs))

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, kind: Optional[str] = None) -> Dict[str, Any]:
        context = self.connection.context_name
        try:
            response = await self._http.get(path, params=params)
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.ProxyError) as e:
            raise ClusterConnectionError(
                f"无法连接到集群 {self.connection.server}: {type(e).__name__} {e}",
                context=context,
                kind=kind,
            ) from e
        except httpx.TransportError as e:
            raise TransientFetchError(
                f"请求失败 {path}: {type(e).__name__} {e}", context=context, kind=kind
            ) from e

        status = response.status_code
        if status == 401:
            raise ClusterConnectionError(
                f"认证失败（401 Unauthorized）: {_error_detail(response)}", context=context, kind=kind
            )
        if status >= 400:
            detail = _error_detail(response)
            if status == 403:
                logger.warning(f"资源拉取被拒绝（权限限制）: 上下文={context}, 路径={path}, 详情={detail}")
            raise TransientFetchError(
                f"HTTP 错误 {status} {path}: {detail}", context=context, kind=kind, status_code=status
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransientFetchError(f"响应不是合法 JSON {path}", context=context, kind=kind) from e
        if not isinstance(data, dict):
            raise TransientFetchError(f"响应格式错误 {path}", context=context, kind=kind)
        return data

    async def list_items(self, path: str, kind: Optional[str] = None) -> AsyncIterator[Dict[str, Any]]:
        """分页列出资源（limit/continue），continue token 过期（410）时从头重新列出一次"""
        restarted = False
        continue_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": self.page_size}
            if continue_token:
                params["continue"] = continue_token
            try:
                data = await self.get_json(path, params=params, kind=kind)
            except TransientFetchError as e:
                if e.status_code == 410 and continue_token and not restarted:
                    logger.info(f"continue token 已过期，重新列出: 上下文={self.connection.context_name}, 路径={path}")
                    restarted = True
                    continue_token = None
                    continue
                raise

            for item in data.get("items") or []:
                yield item

            continue_token = (data.get("metadata") or {}).get("continue")
            if not continue_token:
                break

    async def server_version(self) -> str:
        """返回 gitVersion，成功结果会被缓存"""
        if self._server_version is None:
            data = await self.get_json("/version", kind="version")
            self._server_version = str(data.get("gitVersion") or "")
        return self._server_version

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "KubeApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
