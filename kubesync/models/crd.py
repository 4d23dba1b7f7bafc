"""
Custom Resource Definition Model
"""

from sqlalchemy import Column, String

from kubesync.models.base import ClusterScopedModel


class K8sCustomResourceDefinition(ClusterScopedModel):
    """CRD 元数据（不采集自定义资源本身）"""

    __tablename__ = "k8s_crds"

    group_name = Column(String(255), nullable=False, comment="API 组")
    kind = Column(String(255), nullable=False, comment="资源 Kind")
    plural = Column(String(255), nullable=False, comment="复数名")
    scope = Column(String(32), nullable=False, comment="Namespaced|Cluster")
