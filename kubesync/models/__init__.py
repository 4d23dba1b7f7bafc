# Models package
# Ensure all model modules are imported so that SQLAlchemy can resolve string-based relationships
from kubesync.models.cluster import K8sCluster  # noqa: F401
from kubesync.models.namespace import K8sNamespace  # noqa: F401
from kubesync.models.pod import K8sPod  # noqa: F401
from kubesync.models.deployment import K8sDeployment  # noqa: F401
from kubesync.models.service import K8sService  # noqa: F401
from kubesync.models.crd import K8sCustomResourceDefinition  # noqa: F401

from kubesync.core.constants import ResourceKind

MODELS_BY_KIND = {
    ResourceKind.CLUSTERS: K8sCluster,
    ResourceKind.NAMESPACES: K8sNamespace,
    ResourceKind.PODS: K8sPod,
    ResourceKind.DEPLOYMENTS: K8sDeployment,
    ResourceKind.SERVICES: K8sService,
    ResourceKind.CRDS: K8sCustomResourceDefinition,
}
