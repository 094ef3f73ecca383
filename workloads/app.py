from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pulumi
from pulumi_kubernetes import apps, core
from pulumi_kubernetes.apps.v1 import DeploymentSpecArgs
from pulumi_kubernetes.core.v1 import ContainerArgs, ContainerPortArgs, EnvVarArgs, HTTPGetActionArgs, HostAliasArgs, PersistentVolumeClaimVolumeSourceArgs, PodSpecArgs, PodTemplateSpecArgs, ProbeArgs, ResourceRequirementsArgs, ServicePortArgs, ServiceSpecArgs, VolumeArgs, VolumeMountArgs
from pulumi_kubernetes.meta.v1 import LabelSelectorArgs, ObjectMetaArgs

from util.errors import DeploymentError
from util.graph import DependencyGraph
from util.naming import owner_label
from workloads.cluster import ClusterHandle
from workloads.storage import StorageClaimHandle

IMAGE_REPOSITORY = "docker.io/diavrank/scaffold-meteor-vue"
APP_LABELS = {"app": "scaffold"}
VOLUME_NAME = "app-volume"

# ---- Address resolution -----------------------------------------------------

class AddressField(enum.Enum):
    HOSTNAME = "hostname"
    IP = "ip"

# Load balancers on these providers only ever report an IP.
IP_ADDRESSED_TARGETS = frozenset({"gke", "aks"})

def address_field_for(target_name: str) -> AddressField:
    return AddressField.IP if target_name in IP_ADDRESSED_TARGETS else AddressField.HOSTNAME

def build_url(target_name: str, status: Any, spec: Any) -> str:
    """Resolve a LoadBalancer service into ``http://<address>:<port>``.

    ``status`` and ``spec`` are the service's resolved status and spec, as
    the plain dicts Pulumi hands to ``apply``. The port is the service's
    exposed port, never the container port.
    """
    addr_field = address_field_for(target_name)
    lb = (status or {}).get("load_balancer") or {}
    ingress = lb.get("ingress")
    if not ingress:
        raise DeploymentError(f"Service for {target_name} has no load balancer ingress")

    address = ingress[0].get(addr_field.value)
    if not address:
        raise DeploymentError(
            f"Load balancer for {target_name} reported no {addr_field.value}"
        )
    return f"http://{address}:{spec['ports'][0]['port']}"

# ---- Specs ------------------------------------------------------------------

@dataclass(frozen=True)
class ProbeTiming:
    initial_delay_seconds: int = 5
    timeout_seconds: int = 1
    period_seconds: int = 10
    failure_threshold: int = 3

@dataclass(frozen=True)
class DeploymentSpec:
    image_tag: str
    container_port: int
    env: Dict[str, Optional[str]] = field(default_factory=dict)
    replicas: int = 2
    # two replicas must fit on one n1-standard-1 node
    cpu_request: str = "250m"
    cpu_limit: str = "400m"
    host_aliases: Dict[str, List[str]] = field(default_factory=dict)
    liveness_path: str = "/api"
    readiness_path: str = "/api/v1"
    probe_timing: ProbeTiming = ProbeTiming()
    mount_path: str = "/opt/app-files"

    @property
    def image(self) -> str:
        return f"{IMAGE_REPOSITORY}:{self.image_tag}"

@dataclass(frozen=True)
class ServiceSpec:
    target_port: int
    port: int = 80
    static_ip: Optional[pulumi.Input[str]] = None
    type: str = "LoadBalancer"
    annotations: Dict[str, str] = field(default_factory=dict)

@dataclass(frozen=True)
class AppUrl:
    name: str
    url: pulumi.Output[str]

    def to_export(self) -> Dict[str, Any]:
        return {"name": self.name, "url": self.url}

# ---- Builders ---------------------------------------------------------------

def _probe(path: str, timing: ProbeTiming) -> ProbeArgs:
    return ProbeArgs(
        http_get=HTTPGetActionArgs(path=path, port="http"),
        initial_delay_seconds=timing.initial_delay_seconds,
        timeout_seconds=timing.timeout_seconds,
        period_seconds=timing.period_seconds,
        failure_threshold=timing.failure_threshold,
    )

def _container(spec: DeploymentSpec, claim: Optional[StorageClaimHandle]) -> ContainerArgs:
    mounts = [VolumeMountArgs(name=VOLUME_NAME, mount_path=spec.mount_path)] if claim else None
    return ContainerArgs(
        name="scaffold",
        image=spec.image,
        ports=[ContainerPortArgs(container_port=spec.container_port, name="http")],
        env=[EnvVarArgs(name=k, value=v) for k, v in spec.env.items()],
        volume_mounts=mounts,
        resources=ResourceRequirementsArgs(
            requests={"cpu": spec.cpu_request},
            limits={"cpu": spec.cpu_limit},
        ),
        liveness_probe=_probe(spec.liveness_path, spec.probe_timing),
        readiness_probe=_probe(spec.readiness_path, spec.probe_timing),
    )

def _pod_spec(spec: DeploymentSpec, claim: Optional[StorageClaimHandle]) -> PodSpecArgs:
    volumes = None
    if claim:
        volumes = [VolumeArgs(
            name=VOLUME_NAME,
            persistent_volume_claim=PersistentVolumeClaimVolumeSourceArgs(claim_name=claim.claim_name),
        )]

    aliases = [HostAliasArgs(ip=ip, hostnames=list(hostnames))
               for ip, hostnames in spec.host_aliases.items()] or None

    return PodSpecArgs(
        containers=[_container(spec, claim)],
        volumes=volumes,
        host_aliases=aliases,
    )

# ---- Main entry point -------------------------------------------------------

def deploy_app(*, name: str, cluster: ClusterHandle, deployment: DeploymentSpec,
               service: ServiceSpec, graph: DependencyGraph,
               claim: Optional[StorageClaimHandle] = None) -> AppUrl:
    if claim is None:
        pulumi.log.info(f"{name}: no storage claim; deploying without persistent storage")

    labels = {**APP_LABELS, "multicloud": owner_label()}
    prerequisites = ["access", "claim"] if claim else ["access"]

    graph.add("deployment", apps.v1.Deployment(
        f"{name}-scaffold-app",
        metadata=ObjectMetaArgs(labels=labels),
        spec=DeploymentSpecArgs(
            selector=LabelSelectorArgs(match_labels=APP_LABELS),
            replicas=deployment.replicas,
            template=PodTemplateSpecArgs(
                metadata=ObjectMetaArgs(labels=APP_LABELS),
                spec=_pod_spec(deployment, claim),
            ),
        ),
        opts=graph.after("deployment", *prerequisites, provider=cluster.provider),
    ))

    svc = graph.add("service", core.v1.Service(
        f"{name}-scaffold-app",
        metadata=ObjectMetaArgs(labels=labels, annotations=service.annotations or None),
        spec=ServiceSpecArgs(
            # some providers cannot allocate a load balancer address on their own
            load_balancer_ip=service.static_ip,
            selector=APP_LABELS,
            ports=[ServicePortArgs(port=service.port, target_port=service.target_port)],
            type=service.type,
        ),
        opts=graph.after("service", "access", provider=cluster.provider),
    ))

    url = pulumi.Output.all(svc.status, svc.spec).apply(
        lambda args: build_url(name, args[0], args[1])
    )
    return AppUrl(name=name, url=url)
