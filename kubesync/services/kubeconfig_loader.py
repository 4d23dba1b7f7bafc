"""
Kubeconfig Loader

读取 kubeconfig（支持 KUBECONFIG 多路径合并）与集群内 ServiceAccount 凭证，
为每个上下文生成 ClusterConnection。只负责发现，不做任何网络调用。
"""

import base64
import binascii
import hashlib
import os
import ssl
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from kubesync.config.settings import settings
from kubesync.core.constants import DEFAULT_NAMESPACE, IN_CLUSTER_CONTEXT_NAME, SERVICE_ACCOUNT_DIR
from kubesync.core.exceptions import ClusterConnectionError, ConfigurationError
from kubesync.core.logging import logger


def compute_cluster_uid(server: str) -> str:
    """集群标识：API Server 地址（去掉结尾的 /）的 SHA-256，与上下文名称无关"""
    normalized = (server or "").strip().rstrip("/")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class KubeCredentials:
    """单个上下文的认证材料，*_data 字段为 kubeconfig 中的 base64 原文"""

    token: str = ""
    token_file: str = ""
    username: str = ""
    password: str = ""
    client_certificate: str = ""
    client_certificate_data: str = ""
    client_key: str = ""
    client_key_data: str = ""
    ca_data: str = ""

    @property
    def has_client_cert(self) -> bool:
        return bool(self.client_certificate or self.client_certificate_data)


@dataclass(frozen=True)
class ClusterConnection:
    """一次同步运行内使用的集群连接参数"""

    context_name: str
    cluster_name: str
    server: str
    namespace: str = DEFAULT_NAMESPACE
    ca_file: str = ""
    insecure_skip_verify: bool = False
    # 上下文配置不完整（集群缺失或缺少 server）时的原因，非空表示无法连接
    invalid_reason: str = field(default="", compare=False)
    credentials: KubeCredentials = field(default_factory=KubeCredentials, repr=False, compare=False)

    @property
    def cluster_uid(self) -> str:
        return compute_cluster_uid(self.server)

    def describe(self) -> Dict[str, Any]:
        """不含凭证的展示信息"""
        return {
            "context_name": self.context_name,
            "cluster_name": self.cluster_name,
            "cluster_uid": self.cluster_uid,
            "server": self.server,
            "namespace": self.namespace,
            "ca_file": self.ca_file,
            "insecure_skip_verify": self.insecure_skip_verify,
            "invalid_reason": self.invalid_reason,
        }

    def read_token(self) -> str:
        creds = self.credentials
        if creds.token:
            return creds.token
        if creds.token_file:
            try:
                return Path(creds.token_file).read_text(encoding="utf-8").strip()
            except OSError as e:
                raise ClusterConnectionError(
                    f"无法读取 token 文件 {creds.token_file}: {e}", context=self.context_name
                ) from e
        return ""


def _decode_b64(value: str, what: str, context: str) -> bytes:
    try:
        return base64.b64decode(value, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ClusterConnectionError(f"{what} 不是合法的 base64: {e}", context=context) from e


def build_ssl_context(connection: ClusterConnection) -> ssl.SSLContext:
    """按连接参数构造 TLS 上下文（CA、跳过校验、客户端证书）"""
    creds = connection.credentials
    try:
        if connection.insecure_skip_verify:
            ctx = ssl.create_default_context()
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        elif connection.ca_file:
            ctx = ssl.create_default_context(cafile=connection.ca_file)
        elif creds.ca_data:
            pem = _decode_b64(creds.ca_data, "certificate-authority-data", connection.context_name)
            ctx = ssl.create_default_context(cadata=pem.decode("utf-8", errors="replace"))
        else:
            ctx = ssl.create_default_context()

        if creds.has_client_cert:
            _load_client_cert(ctx, connection)
    except (ssl.SSLError, OSError) as e:
        raise ClusterConnectionError(
            f"TLS 配置无效: {e}", context=connection.context_name
        ) from e
    return ctx


def _load_client_cert(ctx: ssl.SSLContext, connection: ClusterConnection) -> None:
    creds = connection.credentials
    # ssl 只接受文件路径，内联证书先落临时文件，加载后立即删除
    temp_paths: List[str] = []
    try:
        cert_path = creds.client_certificate
        if not cert_path:
            cert_path = _write_temp(
                _decode_b64(creds.client_certificate_data, "client-certificate-data", connection.context_name)
            )
            temp_paths.append(cert_path)
        key_path = creds.client_key or None
        if not key_path and creds.client_key_data:
            key_path = _write_temp(
                _decode_b64(creds.client_key_data, "client-key-data", connection.context_name)
            )
            temp_paths.append(key_path)
        ctx.load_cert_chain(certfile=cert_path, keyfile=key_path)
    finally:
        for path in temp_paths:
            try:
                os.unlink(path)
            except OSError:
                logger.debug(f"临时证书文件删除失败: {path}")


def _write_temp(content: bytes) -> str:
    fd, path = tempfile.mkstemp(prefix="kubesync-", suffix=".pem")
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    return path


class KubeconfigLoader:
    """从 kubeconfig 文件或集群内 ServiceAccount 发现上下文"""

    def __init__(
        self,
        kubeconfig: Optional[Union[str, Iterable[str]]] = None,
        service_account_dir: str = SERVICE_ACCOUNT_DIR,
        environ: Optional[Dict[str, str]] = None,
    ):
        self._kubeconfig = kubeconfig if kubeconfig is not None else settings.KUBECONFIG
        self.service_account_dir = Path(service_account_dir)
        self.environ = environ if environ is not None else os.environ

    def config_paths(self) -> List[Path]:
        raw = self._kubeconfig
        if raw is None:
            raw = self.environ.get("KUBECONFIG") or ""
        if isinstance(raw, str):
            candidates = [p for p in raw.split(os.pathsep) if p.strip()]
        else:
            candidates = [p for p in raw if p]
        if not candidates:
            candidates = [str(Path.home() / ".kube" / "config")]
        return [Path(p).expanduser() for p in candidates]

    def load(self) -> List[ClusterConnection]:
        """
        返回所有上下文的连接参数

        Raises:
            ConfigurationError: 没有任何可用的凭证来源
        """
        connections = self._load_kubeconfig()
        if connections:
            return connections

        in_cluster = self._load_in_cluster()
        if in_cluster is not None:
            logger.info("未找到 kubeconfig，使用集群内 ServiceAccount 凭证")
            return [in_cluster]

        raise ConfigurationError(
            "未找到 Kubernetes 凭证来源: " + ", ".join(str(p) for p in self.config_paths())
        )

    def _load_kubeconfig(self) -> List[ClusterConnection]:
        clusters: Dict[str, Dict[str, Any]] = {}
        users: Dict[str, Dict[str, Any]] = {}
        contexts: Dict[str, Dict[str, Any]] = {}
        base_dirs: Dict[str, Path] = {}

        # 多个文件合并时，同名条目以先出现的为准
        for path in self.config_paths():
            if not path.is_file():
                continue
            try:
                doc = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"kubeconfig 解析失败 {path}: {e}") from e
            if not isinstance(doc, dict):
                raise ConfigurationError(f"kubeconfig 格式错误 {path}")

            for entry in doc.get("clusters") or []:
                name = entry.get("name")
                if name and name not in clusters:
                    clusters[name] = entry.get("cluster") or {}
                    base_dirs[f"cluster:{name}"] = path.parent
            for entry in doc.get("users") or []:
                name = entry.get("name")
                if name and name not in users:
                    users[name] = entry.get("user") or {}
                    base_dirs[f"user:{name}"] = path.parent
            for entry in doc.get("contexts") or []:
                name = entry.get("name")
                if name and name not in contexts:
                    contexts[name] = entry.get("context") or {}

        connections = []
        for context_name in sorted(contexts):
            ctx = contexts[context_name]
            cluster_ref = ctx.get("cluster") or ""
            cluster = clusters.get(cluster_ref)
            if cluster is None or not cluster.get("server"):
                reason = (
                    f"上下文引用的集群不存在: {cluster_ref}" if cluster is None else f"集群 {cluster_ref} 缺少 server"
                )
                logger.warning(f"上下文配置不完整: 上下文={context_name}, 原因={reason}")
                connections.append(
                    ClusterConnection(
                        context_name=context_name,
                        cluster_name=cluster_ref or context_name,
                        server="",
                        namespace=ctx.get("namespace") or DEFAULT_NAMESPACE,
                        invalid_reason=reason,
                    )
                )
                continue
            user_ref = ctx.get("user") or ""
            user = users.get(user_ref, {})
            if "exec" in user or "auth-provider" in user:
                logger.warning(f"上下文使用 exec/auth-provider 认证，当前不支持: 上下文={context_name}")

            cluster_dir = base_dirs.get(f"cluster:{cluster_ref}")
            user_dir = base_dirs.get(f"user:{user_ref}")
            connections.append(
                ClusterConnection(
                    context_name=context_name,
                    cluster_name=cluster_ref or context_name,
                    server=str(cluster["server"]).strip(),
                    namespace=ctx.get("namespace") or DEFAULT_NAMESPACE,
                    ca_file=_resolve_path(cluster.get("certificate-authority"), cluster_dir),
                    insecure_skip_verify=bool(cluster.get("insecure-skip-tls-verify", False)),
                    credentials=KubeCredentials(
                        token=user.get("token") or "",
                        token_file=_resolve_path(user.get("tokenFile"), user_dir),
                        username=user.get("username") or "",
                        password=user.get("password") or "",
                        client_certificate=_resolve_path(user.get("client-certificate"), user_dir),
                        client_certificate_data=user.get("client-certificate-data") or "",
                        client_key=_resolve_path(user.get("client-key"), user_dir),
                        client_key_data=user.get("client-key-data") or "",
                        ca_data=cluster.get("certificate-authority-data") or "",
                    ),
                )
            )
        return connections

    def _load_in_cluster(self) -> Optional[ClusterConnection]:
        host = self.environ.get("KUBERNETES_SERVICE_HOST")
        port = self.environ.get("KUBERNETES_SERVICE_PORT") or "443"
        token_file = self.service_account_dir / "token"
        if not host or not token_file.is_file():
            return None

        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        namespace = DEFAULT_NAMESPACE
        ns_file = self.service_account_dir / "namespace"
        if ns_file.is_file():
            namespace = ns_file.read_text(encoding="utf-8").strip() or DEFAULT_NAMESPACE
        ca_file = self.service_account_dir / "ca.crt"

        return ClusterConnection(
            context_name=IN_CLUSTER_CONTEXT_NAME,
            cluster_name=IN_CLUSTER_CONTEXT_NAME,
            server=f"https://{host}:{port}",
            namespace=namespace,
            ca_file=str(ca_file) if ca_file.is_file() else "",
            credentials=KubeCredentials(token_file=str(token_file)),
        )


def _resolve_path(value: Optional[str], base_dir: Optional[Path]) -> str:
    # kubeconfig 中的相对路径相对于该文件所在目录
    if not value:
        return ""
    path = Path(value).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return str(path)
