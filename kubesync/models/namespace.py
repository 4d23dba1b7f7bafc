"""
Namespace Model
"""

from sqlalchemy import Column, String

from kubesync.models.base import ClusterScopedModel


class K8sNamespace(ClusterScopedModel):
    """Kubernetes 命名空间"""

    __tablename__ = "k8s_namespaces"

    status = Column(String(64), nullable=False, default="", comment="命名空间阶段")
