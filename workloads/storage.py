from __future__ import annotations
from dataclasses import dataclass

import pulumi
import pulumi_gcp as gcp
from pulumi_kubernetes import core
from pulumi_kubernetes.core.v1 import NFSVolumeSourceArgs, PersistentVolumeClaimSpecArgs, PersistentVolumeSpecArgs, VolumeResourceRequirementsArgs
from pulumi_kubernetes.meta.v1 import ObjectMetaArgs

from util.errors import ConfigurationError
from util.graph import DependencyGraph
from util.naming import owner_label
from workloads.cluster import ClusterHandle

# GCP persistent disks cannot be mounted read-write by more than one node, so
# shared app files live on a Filestore NFS share instead.
ACCESS_MODE = "ReadWriteMany"
# Volume and claim only bind when these match textually.
STORAGE_CLASS_NAME = "standard"

@dataclass(frozen=True)
class StorageSpec:
    capacity_gb: int
    location: str
    share_name: str = "appDisk"
    tier: str = "STANDARD"
    network: str = "default"
    access_mode: str = ACCESS_MODE
    storage_class_name: str = STORAGE_CLASS_NAME

    def __post_init__(self):
        if not isinstance(self.capacity_gb, int) or self.capacity_gb <= 0:
            raise ConfigurationError(f"Storage capacity must be a positive number of GB, got {self.capacity_gb!r}")

    @property
    def size(self) -> str:
        return f"{self.capacity_gb}Gi"

@dataclass(frozen=True)
class StorageClaimHandle:
    claim: core.v1.PersistentVolumeClaim
    claim_name: pulumi.Output[str]
    volume_name: pulumi.Output[str]
    storage_class_name: str

def provision_storage(*, name: str, spec: StorageSpec, cluster: ClusterHandle,
                      graph: DependencyGraph) -> StorageClaimHandle:
    labels = {"app": "scaffold", "multicloud": owner_label()}

    # Filestore's minimum capacity is 1024GB on the STANDARD tier.
    share = graph.add("file-share", gcp.filestore.Instance(
        f"{name}-nfs-instance",
        tier=spec.tier,
        file_shares=gcp.filestore.InstanceFileSharesArgs(
            name=spec.share_name,
            capacity_gb=spec.capacity_gb,
        ),
        networks=[gcp.filestore.InstanceNetworkArgs(
            network=spec.network,
            modes=["MODE_IPV4"],
        )],
        location=spec.location,
        opts=graph.after("file-share"),
    ))

    server = share.networks.apply(lambda networks: networks[0]["ip_addresses"][0])

    volume = graph.add("volume", core.v1.PersistentVolume(
        f"{name}-app-pv",
        metadata=ObjectMetaArgs(labels=labels),
        spec=PersistentVolumeSpecArgs(
            capacity={"storage": spec.size},
            access_modes=[spec.access_mode],
            persistent_volume_reclaim_policy="Retain",
            storage_class_name=spec.storage_class_name,
            nfs=NFSVolumeSourceArgs(
                path=f"/{spec.share_name}",
                server=server,
            ),
        ),
        opts=graph.after("volume", "file-share", "access", provider=cluster.provider),
    ))

    claim = graph.add("claim", core.v1.PersistentVolumeClaim(
        f"{name}-app-pvc",
        metadata=ObjectMetaArgs(labels=labels),
        spec=PersistentVolumeClaimSpecArgs(
            storage_class_name=spec.storage_class_name,
            access_modes=[spec.access_mode],
            resources=VolumeResourceRequirementsArgs(
                requests={"storage": spec.size},
            ),
            volume_name=volume.metadata.name,
        ),
        opts=graph.after("claim", "volume", provider=cluster.provider),
    ))

    return StorageClaimHandle(
        claim=claim,
        claim_name=claim.metadata.name,
        volume_name=volume.metadata.name,
        storage_class_name=spec.storage_class_name,
    )
