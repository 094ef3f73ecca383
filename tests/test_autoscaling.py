"""Tests for binding the CPU autoscaler to the deployment."""

import pulumi
import pulumi_kubernetes as k8s
import pytest

from util.errors import ConfigurationError
from util.graph import DependencyGraph
from workloads.autoscaling import AutoscalingPolicySpec, bind_autoscaler
from workloads.cluster import ClusterHandle

HPA = "kubernetes:autoscaling/v1:HorizontalPodAutoscaler"


def bare_cluster(name, graph):
    provider = graph.add("access", k8s.Provider(f"{name}-k8s", kubeconfig="{}"))
    return ClusterHandle(name=name, cluster=None, node_pool=None, provider=provider,
                         kubeconfig=pulumi.Output.from_input("{}"))


class TestPolicy:

    def test_defaults(self):
        policy = AutoscalingPolicySpec()
        assert (policy.target_cpu_utilization, policy.min_replicas, policy.max_replicas) == (90, 2, 4)

    @pytest.mark.parametrize("bounds", [(0, 4), (5, 4)])
    def test_invalid_bounds(self, bounds):
        with pytest.raises(ConfigurationError):
            AutoscalingPolicySpec(min_replicas=bounds[0], max_replicas=bounds[1])


class TestBindAutoscaler:

    @pulumi.runtime.test
    def test_targets_deployment_by_name(self, fake):
        graph = DependencyGraph("gke")
        cluster = bare_cluster("gke", graph)
        deployment = graph.add("deployment", k8s.apps.v1.Deployment(
            "gke-scaffold-app",
            spec={"selector": {"matchLabels": {"app": "scaffold"}}, "template": {}},
            opts=graph.after("deployment", "access", provider=cluster.provider),
        ))

        hpa = bind_autoscaler(name="gke", cluster=cluster, deployment_name=deployment.metadata.name,
                              policy=AutoscalingPolicySpec(), graph=graph)

        def check(_):
            inputs = fake.one(HPA, "gke-scaffold-app-hpa")
            assert inputs["metadata"]["name"] == "scaffold-app-hpa"
            assert inputs["spec"]["scaleTargetRef"] == {
                "apiVersion": "apps/v1",
                "kind": "Deployment",
                "name": "gke-scaffold-app",
            }
            assert inputs["spec"]["minReplicas"] == 2
            assert inputs["spec"]["maxReplicas"] == 4
            assert inputs["spec"]["targetCPUUtilizationPercentage"] == 90
            assert graph.dependencies("autoscaler") == {"deployment"}

        return hpa.urn.apply(check)

    def test_requires_deployment_node(self):
        graph = DependencyGraph("gke")
        cluster = ClusterHandle(name="gke", cluster=None, node_pool=None, provider=None, kubeconfig=None)
        with pytest.raises(KeyError, match="deployment"):
            bind_autoscaler(name="gke", cluster=cluster, deployment_name="gke-scaffold-app",
                            policy=AutoscalingPolicySpec(), graph=graph)
