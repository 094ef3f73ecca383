# gke.py
from __future__ import annotations
import pulumi
import pulumi_gcp as gcp

from util.graph import DependencyGraph
from util.naming import with_suffix
from workloads.cluster import (
    PROVIDER_GKE,
    ClusterHandle,
    ClusterSpec,
    ExecAuth,
    access_provider,
    make_credential,
    render_kubeconfig,
)

DEFAULTS = dict(
    location="us-central1-a",
    machine_type="n1-standard-1",
    initial_nodes=2,
    min_nodes=2,
    max_nodes=3,
    preemptible=True,
)

OAUTH_SCOPES = [
    "https://www.googleapis.com/auth/compute",
    "https://www.googleapis.com/auth/devstorage.read_only",
    "https://www.googleapis.com/auth/logging.write",
    "https://www.googleapis.com/auth/monitoring",
]

# GKE authenticates kubectl through gcloud rather than a client cert/key.
GKE_AUTH_PLUGIN = ExecAuth(
    command="gke-gcloud-auth-plugin",
    install_hint=(
        "Install gke-gcloud-auth-plugin for use with kubectl by following\n"
        "https://cloud.google.com/blog/products/containers-kubernetes/kubectl-auth-changes-in-gke"
    ),
    provide_cluster_info=True,
)

def _context_name(cluster_name: str, zone: str) -> str:
    return f"{gcp.config.project}_{zone}_{cluster_name}"

def _kubeconfig(cluster: gcp.container.Cluster, zone: str) -> pulumi.Output[str]:
    def build(args) -> str:
        name, endpoint, auth = args
        credential = make_credential(
            name, endpoint, auth.get("cluster_ca_certificate") if auth else None,
            exec_auth=GKE_AUTH_PLUGIN,
        )
        return render_kubeconfig(_context_name(name, zone), credential)

    return pulumi.Output.all(cluster.name, cluster.endpoint, cluster.master_auth).apply(build)

def provision_gke_cluster(*, name: str, spec: ClusterSpec, graph: DependencyGraph) -> ClusterHandle:
    if spec.provider != PROVIDER_GKE:
        raise ValueError(f"provision_gke_cluster called with a {spec.provider} spec")

    engine_version = gcp.container.get_engine_versions_output(location=spec.location).latest_master_version
    engine_version.apply(lambda v: pulumi.log.info(f"Using GKE engine version for {name}: {v}"))

    # A cluster cannot be created without a node pool, so it starts with the
    # smallest possible default pool and drops it once created.
    cluster = graph.add("cluster", gcp.container.Cluster(
        with_suffix(name, "cluster"),
        location=spec.location,
        initial_node_count=1,
        remove_default_node_pool=True,
        deletion_protection=False,
        min_master_version=engine_version,
        opts=graph.after("cluster"),
    ))

    node_pool = graph.add("node-pool", gcp.container.NodePool(
        f"{name}-primary-node-pool",
        cluster=cluster.name,
        initial_node_count=spec.initial_nodes,
        location=cluster.location,
        node_config=gcp.container.NodePoolNodeConfigArgs(
            preemptible=spec.preemptible,
            machine_type=spec.machine_type,
            oauth_scopes=OAUTH_SCOPES,
        ),
        version=engine_version,
        autoscaling=gcp.container.NodePoolAutoscalingArgs(
            min_node_count=spec.min_nodes,
            max_node_count=spec.max_nodes,
        ),
        management=gcp.container.NodePoolManagementArgs(auto_repair=True),
        opts=graph.after("node-pool", "cluster"),
    ))

    kubeconfig = pulumi.Output.secret(_kubeconfig(cluster, spec.location))
    provider = access_provider(name=name, kubeconfig=kubeconfig, graph=graph)
    return ClusterHandle(name=name, cluster=cluster, node_pool=node_pool,
                         provider=provider, kubeconfig=kubeconfig)
