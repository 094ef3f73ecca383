from __future__ import annotations
from dataclasses import dataclass

import pulumi
from pulumi_kubernetes import autoscaling
from pulumi_kubernetes.autoscaling.v1 import CrossVersionObjectReferenceArgs, HorizontalPodAutoscalerSpecArgs
from pulumi_kubernetes.meta.v1 import ObjectMetaArgs

from util.errors import ConfigurationError
from util.graph import DependencyGraph
from workloads.cluster import ClusterHandle

@dataclass(frozen=True)
class AutoscalingPolicySpec:
    # Percent of each pod's CPU *limit*: with a 400m limit, 90 scales out above 360m.
    target_cpu_utilization: int = 90
    # Once the autoscaler exists this replaces the deployment's replica count.
    min_replicas: int = 2
    max_replicas: int = 4

    def __post_init__(self):
        if not (0 < self.min_replicas <= self.max_replicas):
            raise ConfigurationError(
                f"Replica bounds must satisfy 0 < min <= max, got {self.min_replicas}/{self.max_replicas}"
            )

def bind_autoscaler(*, name: str, cluster: ClusterHandle, deployment_name: pulumi.Input[str],
                    policy: AutoscalingPolicySpec, graph: DependencyGraph) -> autoscaling.v1.HorizontalPodAutoscaler:
    # addressed by name only; the graph edge keeps it behind the deployment
    return graph.add("autoscaler", autoscaling.v1.HorizontalPodAutoscaler(
        f"{name}-scaffold-app-hpa",
        metadata=ObjectMetaArgs(name="scaffold-app-hpa"),
        spec=HorizontalPodAutoscalerSpecArgs(
            scale_target_ref=CrossVersionObjectReferenceArgs(
                api_version="apps/v1",
                kind="Deployment",
                name=deployment_name,
            ),
            min_replicas=policy.min_replicas,
            max_replicas=policy.max_replicas,
            target_cpu_utilization_percentage=policy.target_cpu_utilization,
        ),
        opts=graph.after("autoscaler", "deployment", provider=cluster.provider),
    ))
