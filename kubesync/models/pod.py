"""
Pod Model
"""

from sqlalchemy import Column, String

from kubesync.models.base import ClusterScopedModel


class K8sPod(ClusterScopedModel):
    """Kubernetes Pod"""

    __tablename__ = "k8s_pods"

    namespace = Column(String(255), nullable=False, comment="命名空间")
    status = Column(String(64), nullable=False, default="", comment="Pod 阶段")
