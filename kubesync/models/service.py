"""
Service Model
"""

from sqlalchemy import Column, String

from kubesync.models.base import ClusterScopedModel


class K8sService(ClusterScopedModel):
    """Kubernetes Service"""

    __tablename__ = "k8s_services"

    namespace = Column(String(255), nullable=False, comment="命名空间")
    type = Column(String(64), nullable=False, default="", comment="Service 类型")
    cluster_ip = Column(String(64), nullable=False, default="", comment="集群内地址")
