"""Deploy the app onto every configured cluster target.

Each target gets its own :class:`DependencyGraph` and shares no resource with
any other target, so the engine is free to work on all of them at once.
Results come back in the order the targets were configured.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import pulumi

from util.config import Settings
from util.errors import ConfigurationError
from util.graph import DependencyGraph
from workloads import compute, gke
from workloads.app import AddressField, AppUrl, DeploymentSpec, ServiceSpec, address_field_for, deploy_app
from workloads.autoscaling import AutoscalingPolicySpec, bind_autoscaler
from workloads.cluster import PROVIDER_DIGITALOCEAN, PROVIDER_GKE, ClusterHandle, ClusterSpec
from workloads.storage import StorageClaimHandle, StorageSpec, provision_storage

# Out-of-cluster database members, reachable by address only.
DATABASE_HOSTNAMES = ["mongo-primary", "mongo-secondary", "mongo-arbiter"]

DO_HOSTNAME_ANNOTATION = "service.beta.kubernetes.io/do-loadbalancer-hostname"

FAMILY_DEFAULTS: Dict[str, Dict[str, Any]] = {
    PROVIDER_GKE: gke.DEFAULTS,
    PROVIDER_DIGITALOCEAN: compute.DEFAULTS,
}

# Families with a managed multi-attach file share.
STORAGE_FAMILIES = frozenset({PROVIDER_GKE})


@dataclass(frozen=True)
class TargetConfig:
    name: str
    cluster: ClusterSpec
    static_ip: Optional[str] = None
    hostname: Optional[str] = None
    storage: bool = True
    vpc_ip_range: Optional[str] = None


@dataclass(frozen=True)
class ClusterTarget:
    name: str
    cluster: ClusterHandle
    claim: Optional[StorageClaimHandle]
    static_ip: Optional[str] = None


@dataclass(frozen=True)
class Deployed:
    target: ClusterTarget
    url: AppUrl
    graph: DependencyGraph


def target_from_config(raw: Dict[str, Any]) -> TargetConfig:
    """Parse one entry of ``multicloud:clusters``.

    ``provider`` defaults to the target name, so ``{"name": "gke"}`` alone is
    a complete GKE target.
    """
    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise ConfigurationError(f"Cluster target without a name: {raw!r}")

    provider = raw.get("provider", name)
    if provider not in FAMILY_DEFAULTS:
        raise ConfigurationError(
            f"Target {name}: unknown provider {provider!r}, expected one of {sorted(FAMILY_DEFAULTS)}"
        )
    d = FAMILY_DEFAULTS[provider]

    try:
        initial = int(raw.get("nodeCount", d["initial_nodes"]))
        spec = ClusterSpec(
            provider=provider,
            location=str(raw.get("location", d["location"])),
            machine_type=str(raw.get("machineType", d["machine_type"])),
            initial_nodes=initial,
            min_nodes=int(raw.get("minNodes", min(initial, d["min_nodes"]))),
            max_nodes=int(raw.get("maxNodes", max(initial, d["max_nodes"]))),
            preemptible=bool(raw.get("preemptible", d["preemptible"])),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Target {name}: invalid node pool settings: {e}") from e

    storage = bool(raw.get("storage", provider in STORAGE_FAMILIES))
    if storage and provider not in STORAGE_FAMILIES:
        raise ConfigurationError(f"Target {name}: {provider} has no managed file share for app storage")

    hostname = raw.get("hostname")
    if (provider == PROVIDER_DIGITALOCEAN and not hostname
            and address_field_for(name) is AddressField.HOSTNAME):
        raise ConfigurationError(
            f"Target {name}: DigitalOcean load balancers only report a hostname when 'hostname' is set"
        )

    return TargetConfig(
        name=name,
        cluster=spec,
        static_ip=raw.get("staticIp"),
        hostname=hostname,
        storage=storage,
        vpc_ip_range=raw.get("vpcIpRange"),
    )


def targets_from_settings(settings: Settings) -> List[TargetConfig]:
    targets = [target_from_config(raw) for raw in settings.clusters]
    names = [t.name for t in targets]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigurationError(f"Duplicate cluster target names: {dupes}")
    return targets


def _provision_cluster(target: TargetConfig, graph: DependencyGraph) -> ClusterHandle:
    if target.cluster.provider == PROVIDER_GKE:
        return gke.provision_gke_cluster(name=target.name, spec=target.cluster, graph=graph)
    return compute.provision_doks_cluster(
        name=target.name, spec=target.cluster, graph=graph, vpc_ip_range=target.vpc_ip_range,
    )


def _service_spec(target: TargetConfig, settings: Settings) -> ServiceSpec:
    annotations: Dict[str, str] = {}
    if target.hostname and target.cluster.provider == PROVIDER_DIGITALOCEAN:
        annotations[DO_HOSTNAME_ANNOTATION] = target.hostname
    return ServiceSpec(
        target_port=settings.app_port,
        static_ip=target.static_ip,
        annotations=annotations,
    )


def _deployment_spec(settings: Settings) -> DeploymentSpec:
    aliases = {settings.database_ip: list(DATABASE_HOSTNAMES)} if settings.database_ip else {}
    return DeploymentSpec(
        image_tag=settings.image_tag,
        container_port=settings.app_port,
        env=dict(settings.environment),
        host_aliases=aliases,
    )


def deploy_target(target: TargetConfig, settings: Settings,
                  policy: Optional[AutoscalingPolicySpec] = None) -> Deployed:
    graph = DependencyGraph(target.name)

    cluster = _provision_cluster(target, graph)

    claim = None
    if target.storage:
        claim = provision_storage(
            name=target.name,
            spec=StorageSpec(capacity_gb=settings.storage_gb, location=target.cluster.location),
            cluster=cluster,
            graph=graph,
        )

    url = deploy_app(
        name=target.name,
        cluster=cluster,
        deployment=_deployment_spec(settings),
        service=_service_spec(target, settings),
        claim=claim,
        graph=graph,
    )

    bind_autoscaler(
        name=target.name,
        cluster=cluster,
        deployment_name=graph.resource("deployment").metadata.name,
        policy=policy or AutoscalingPolicySpec(),
        graph=graph,
    )

    return Deployed(
        target=ClusterTarget(name=target.name, cluster=cluster, claim=claim, static_ip=target.static_ip),
        url=url,
        graph=graph,
    )


def deploy_fleet(targets: Sequence[TargetConfig], settings: Settings) -> List[Deployed]:
    if settings.database_ip:
        pulumi.log.info(f"DATABASE_IP_ADDRESS: {settings.database_ip}")
    else:
        pulumi.log.warn("DATABASE_IP_ADDRESS not set; pods get no database host aliases")

    # one entry per target, in configured order
    return [deploy_target(t, settings) for t in targets]
