"""
Workload Builder — pure construction of the stateful workload for a volume service.

Nothing here talks to a collaborator; the reconciler hands the result to the
resource applier. The input hash is carried as an env var so any input change
rolls the pods.
"""

import json
from typing import Dict, List

from volume_reconciler.errors import MalformedInputError
from volume_reconciler.models.instance import VolumeInstance
from volume_reconciler.models.reconciler import ReconcilerConfig
from volume_reconciler.models.workload import WorkloadSpec

NETWORKS_ANNOTATION = "k8s.v1.cni.cncf.io/networks"
CONFIG_HASH_ENV = "CONFIG_HASH"

# Host paths the LVM driver needs for iSCSI/NVMe targets and device access
LVM_HOST_PATHS = [
    "/etc/iscsi",
    "/etc/nvme",
    "/var/lib/cinder",
    "/dev",
    "/lib/modules",
    "/run",
]


def service_labels(instance: VolumeInstance, config: ReconcilerConfig) -> Dict[str, str]:
    """Selector labels shared by the workload and its pods."""
    return {
        "service": config.service_name,
        "component": config.component_name,
        "backend": instance.backend_name,
    }


def instance_labels(
    instance: VolumeInstance,
    config: ReconcilerConfig,
    extra: Dict[str, str],
) -> Dict[str, str]:
    """Labels identifying objects owned by `instance`."""
    labels = {
        f"{config.group_label}/name": instance.name,
        f"{config.group_label}/namespace": instance.namespace,
    }
    labels.update(extra)
    return labels


def create_networks_annotation(namespace: str, attachments: List[str]) -> Dict[str, str]:
    """Pod annotation requesting one extra interface per network attachment."""
    networks = []
    for name in attachments:
        if not name or not name.strip():
            raise MalformedInputError(
                f"network attachment names must not be empty: {attachments}"
            )
        networks.append({"name": name, "namespace": namespace, "interface": name})
    return {NETWORKS_ANNOTATION: json.dumps(networks)}


def build_workload(
    instance: VolumeInstance,
    input_hash: str,
    labels: Dict[str, str],
    annotations: Dict[str, str],
    uses_lvm: bool,
) -> WorkloadSpec:
    return WorkloadSpec(
        name=instance.name,
        namespace=instance.namespace,
        replicas=instance.spec.replicas,
        image=instance.spec.container_image,
        labels=dict(labels),
        pod_annotations=dict(annotations),
        env={CONFIG_HASH_ENV: input_hash},
        config_secret=f"{instance.name}-config-data",
        node_selector=instance.spec.node_selector,
        privileged=True,
        host_paths=list(LVM_HOST_PATHS) if uses_lvm else [],
    )
