"""
Base Model
"""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import declared_attr

from kubesync.config.database import Base


class ClusterScopedModel(Base):
    """集群内资源表的公共列：复合主键 (cluster_uid, uid)，外键级联到集群表"""

    __abstract__ = True

    @declared_attr
    def cluster_uid(cls):
        return Column(
            String(64),
            ForeignKey("k8s_clusters.cluster_uid", ondelete="CASCADE"),
            primary_key=True,
            comment="集群标识（API Server 地址哈希）",
        )

    uid = Column(String(128), primary_key=True, comment="资源UID")
    context_name = Column(String(255), comment="来源上下文名称（仅展示）")
    name = Column(String(255), nullable=False, comment="资源名称")
    created_at = Column(DateTime(timezone=True), comment="资源创建时间")
    synced_at = Column(DateTime(timezone=True), nullable=False, comment="最近同步时间")
