"""
Deployment Model
"""

from sqlalchemy import Column, String, Integer

from kubesync.models.base import ClusterScopedModel


class K8sDeployment(ClusterScopedModel):
    """Kubernetes Deployment"""

    __tablename__ = "k8s_deployments"

    namespace = Column(String(255), nullable=False, comment="命名空间")
    replicas = Column(Integer, nullable=False, default=0, comment="期望副本数")
    ready = Column(Integer, nullable=False, default=0, comment="就绪副本数")
