"""
Constants Module
"""

from enum import Enum


class ResourceKind(str, Enum):
    """可同步的资源类型（值即配置中使用的资源名）"""

    CLUSTERS = "clusters"
    NAMESPACES = "namespaces"
    PODS = "pods"
    DEPLOYMENTS = "deployments"
    SERVICES = "services"
    CRDS = "crds"


# 同步顺序：集群信息必须最先写入，其他表通过外键引用它
SYNC_ORDER = [
    ResourceKind.CLUSTERS,
    ResourceKind.NAMESPACES,
    ResourceKind.PODS,
    ResourceKind.DEPLOYMENTS,
    ResourceKind.SERVICES,
    ResourceKind.CRDS,
]

TABLE_NAMES = {
    ResourceKind.CLUSTERS: "k8s_clusters",
    ResourceKind.NAMESPACES: "k8s_namespaces",
    ResourceKind.PODS: "k8s_pods",
    ResourceKind.DEPLOYMENTS: "k8s_deployments",
    ResourceKind.SERVICES: "k8s_services",
    ResourceKind.CRDS: "k8s_crds",
}

# 配置中允许的资源名别名
RESOURCE_ALIASES = {
    "cluster": ResourceKind.CLUSTERS,
    "cluster-info": ResourceKind.CLUSTERS,
    "namespace": ResourceKind.NAMESPACES,
    "ns": ResourceKind.NAMESPACES,
    "pod": ResourceKind.PODS,
    "deployment": ResourceKind.DEPLOYMENTS,
    "deploy": ResourceKind.DEPLOYMENTS,
    "service": ResourceKind.SERVICES,
    "svc": ResourceKind.SERVICES,
    "crd": ResourceKind.CRDS,
    "customresourcedefinitions": ResourceKind.CRDS,
    "custom_resources": ResourceKind.CRDS,
}

DEFAULT_NAMESPACE = "default"

# 在集群内运行时 ServiceAccount 凭证的位置
IN_CLUSTER_CONTEXT_NAME = "in-cluster"
SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
