"""
Sync Schemas
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kubesync.core.constants import SYNC_ORDER, ResourceKind


def _split_list(v: Any) -> Any:
    """逗号分隔字符串转列表，去除首尾空白并丢弃空项"""
    if v is None:
        return []
    if isinstance(v, str):
        v = v.split(",")
    if isinstance(v, (list, tuple, set, frozenset)):
        return [str(item).strip() for item in v if item is not None and str(item).strip()]
    return v


class SyncSpec(BaseModel):
    """同步入参：数据库地址 + 上下文/资源过滤（空列表表示全部）"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    database_url: str = Field("", description="数据库连接地址")
    contexts: List[str] = Field(default_factory=list, validation_alias="clusters", description="要同步的上下文，空表示全部")
    resources: List[str] = Field(default_factory=list, description="要同步的资源类型，空表示全部")

    @field_validator("database_url", mode="before")
    @classmethod
    def _strip_url(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else (v or "")

    @field_validator("contexts", "resources", mode="before")
    @classmethod
    def _normalize_list(cls, v: Any) -> Any:
        return _split_list(v)


class TableOptions(BaseModel):
    """宿主下发的表过滤（支持通配符，skip_tables 优先）"""

    tables: List[str] = Field(default_factory=list, description="允许同步的表，空表示全部")
    skip_tables: List[str] = Field(default_factory=list, description="跳过的表")

    @field_validator("tables", "skip_tables", mode="before")
    @classmethod
    def _normalize_list(cls, v: Any) -> Any:
        return _split_list(v)


class SelectionConfig(BaseModel):
    """一次同步运行中生效的上下文与资源类型集合，构造后不可变"""

    model_config = ConfigDict(frozen=True)

    clusters: FrozenSet[str]
    kinds: FrozenSet[ResourceKind]
    # 被宿主表过滤排除的资源类型
    excluded_kinds: FrozenSet[ResourceKind] = frozenset()

    def ordered_clusters(self) -> List[str]:
        return sorted(self.clusters)

    def ordered_kinds(self) -> List[ResourceKind]:
        return [k for k in SYNC_ORDER if k in self.kinds]


class SyncIssue(BaseModel):
    """同步过程中记录的可恢复错误"""

    context: Optional[str] = None
    cluster_uid: Optional[str] = None
    kind: Optional[str] = None
    error_type: str
    code: str
    message: str


class KindResult(BaseModel):
    kind: ResourceKind
    status: str = "ok"  # ok / error / skipped
    rows: int = 0
    error: Optional[str] = None


class ClusterResult(BaseModel):
    context: str
    cluster_uid: Optional[str] = None
    status: str = "ok"  # ok / unreachable / not_found / partial / error
    aliases: List[str] = Field(default_factory=list, description="指向同一集群的其他上下文")
    kinds: List[KindResult] = Field(default_factory=list)
    degraded_reads: int = 0


class SyncReport(BaseModel):
    """一次同步运行的结果汇总"""

    started_at: datetime
    finished_at: Optional[datetime] = None
    cancelled: bool = False
    clusters: List[ClusterResult] = Field(default_factory=list)
    issues: List[SyncIssue] = Field(default_factory=list)

    @property
    def degraded_reads(self) -> int:
        return sum(c.degraded_reads for c in self.clusters)

    @property
    def total_rows(self) -> int:
        return sum(k.rows for c in self.clusters for k in c.kinds)

    def issues_of(self, error_type: str) -> List[SyncIssue]:
        return [i for i in self.issues if i.error_type == error_type]

    def summary(self) -> Dict[str, Any]:
        return {
            "clusters": len(self.clusters),
            "rows": self.total_rows,
            "issues": len(self.issues),
            "degraded_reads": self.degraded_reads,
            "cancelled": self.cancelled,
        }


class SyncRunRequest(BaseModel):
    """触发同步的请求体，字段为空时回退到环境配置"""

    model_config = ConfigDict(populate_by_name=True)

    database_url: Optional[str] = Field(None, description="数据库连接地址")
    contexts: List[str] = Field(default_factory=list, validation_alias="clusters")
    resources: List[str] = Field(default_factory=list)
    tables: List[str] = Field(default_factory=list, description="宿主表白名单（支持通配符）")
    skip_tables: List[str] = Field(default_factory=list, description="宿主表黑名单")
    background: bool = Field(False, description="为 true 时投递 Celery 任务异步执行")

    @field_validator("contexts", "resources", "tables", "skip_tables", mode="before")
    @classmethod
    def _normalize_list(cls, v: Any) -> Any:
        return _split_list(v)

    def to_spec(self) -> Dict[str, Any]:
        return {
            "database_url": self.database_url or "",
            "contexts": self.contexts,
            "resources": self.resources,
        }

    def table_options(self) -> Optional[TableOptions]:
        if not self.tables and not self.skip_tables:
            return None
        return TableOptions(tables=self.tables, skip_tables=self.skip_tables)
