"""
Cluster Model
"""

from sqlalchemy import Column, String, Text, Boolean, DateTime, BigInteger
from sqlalchemy.orm import relationship

from kubesync.config.database import Base


class K8sCluster(Base):
    """集群信息，以 API Server 地址哈希为主键，同一集群的多个上下文别名归并为一行"""

    __tablename__ = "k8s_clusters"

    cluster_uid = Column(String(64), primary_key=True, comment="集群标识（API Server 地址哈希）")
    context_name = Column(String(255), comment="最近一次同步使用的上下文")
    cluster_name = Column(String(255), nullable=False, comment="集群名称")
    server = Column(String(512), comment="Kubernetes API Server 地址")
    ca_file = Column(Text, comment="CA 证书文件路径")
    insecure_skip_verify = Column(Boolean, default=False, comment="是否跳过证书校验")
    namespace = Column(String(255), default="default", comment="默认命名空间")
    kubernetes_version = Column(String(64), comment="Kubernetes 版本")
    node_count = Column(BigInteger, comment="节点数量")
    synced_at = Column(DateTime(timezone=True), nullable=False, comment="最近同步时间")
    created_at = Column(DateTime(timezone=True), nullable=False, comment="首次发现时间")
    updated_at = Column(DateTime(timezone=True), nullable=False, comment="更新时间")

    namespaces = relationship("K8sNamespace", cascade="all, delete-orphan", passive_deletes=True)
    pods = relationship("K8sPod", cascade="all, delete-orphan", passive_deletes=True)
    deployments = relationship("K8sDeployment", cascade="all, delete-orphan", passive_deletes=True)
    services = relationship("K8sService", cascade="all, delete-orphan", passive_deletes=True)
    crds = relationship("K8sCustomResourceDefinition", cascade="all, delete-orphan", passive_deletes=True)
