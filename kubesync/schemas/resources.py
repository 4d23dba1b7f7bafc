"""
Canonical row shapes produced by the resource providers.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator


class ClusterInfoRow(BaseModel):
    """集群信息行（主键为集群标识，由同步引擎补充）"""

    cluster_name: str
    server: str = ""
    ca_file: str = ""
    insecure_skip_verify: bool = False
    namespace: str = "default"
    kubernetes_version: str = ""
    node_count: int = 0

    @property
    def native_id(self) -> Optional[str]:
        return None

    def to_record(self, cluster_uid: str, context_name: str, synced_at: datetime) -> Dict[str, Any]:
        record = {"cluster_uid": cluster_uid, "context_name": context_name}
        record.update(self.model_dump())
        # created_at 仅在首次插入时生效，存储层在冲突更新时保留原值
        record.update({"synced_at": synced_at, "created_at": synced_at, "updated_at": synced_at})
        return record


class ResourceRow(BaseModel):
    """集群内资源行的公共字段"""

    uid: str
    name: str
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _empty_timestamp(cls, v: Any) -> Any:
        return v or None

    @property
    def native_id(self) -> str:
        return self.uid

    def to_record(self, cluster_uid: str, context_name: str, synced_at: datetime) -> Dict[str, Any]:
        record = {"cluster_uid": cluster_uid, "context_name": context_name}
        record.update(self.model_dump())
        record["synced_at"] = synced_at
        return record


class NamespaceRow(ResourceRow):
    status: str = ""


class PodRow(ResourceRow):
    namespace: str = ""
    status: str = ""


class DeploymentRow(ResourceRow):
    namespace: str = ""
    replicas: int = 0
    ready: int = 0


class ServiceRow(ResourceRow):
    namespace: str = ""
    type: str = ""
    cluster_ip: str = ""


class CustomResourceDefinitionRow(ResourceRow):
    group_name: str = ""
    kind: str = ""
    plural: str = ""
    scope: str = ""
