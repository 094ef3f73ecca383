# compute.py
from __future__ import annotations
import pulumi
import pulumi_digitalocean as do
from typing import Any, Dict, List, Optional

from util.graph import DependencyGraph
from util.naming import with_suffix
from workloads.cluster import (
    PROVIDER_DIGITALOCEAN,
    ClusterHandle,
    ClusterSpec,
    access_provider,
    make_credential,
    render_kubeconfig,
)
from workloads.networking import ensure_vpc

DEFAULTS = dict(
    location="nyc3",
    machine_type="s-2vcpu-4gb",
    initial_nodes=2,
    min_nodes=2,
    max_nodes=3,
    preemptible=False,
)

# DOKS refuses to drop the pool a cluster is created with, so it stays as
# small as DO allows and is tainted so app pods only land on the primary pool.
DEFAULT_POOL_SIZE = "s-1vcpu-2gb"
DEFAULT_POOL_TAINT = ("pool", "default", "NoSchedule")

# ---- Node pool args builders ------------------------------------------------

def _labels_for(name: str, pool_name: str) -> Dict[str, str]:
    return {"multicloud": str(name), "multicloud-pool": str(pool_name)}

def _np_common_kwargs(name: str, pool_name: str, spec: ClusterSpec) -> Dict[str, Any]:
    autoscale = spec.min_nodes != spec.max_nodes

    kwargs: Dict[str, Any] = dict(
        name=f"{name}-{pool_name}",
        size=spec.machine_type,
        labels=_labels_for(name, pool_name),
        tags=["multicloud", name, "pool", pool_name],
        auto_scale=autoscale,
    )
    if autoscale:
        kwargs.update(dict(min_nodes=spec.min_nodes, max_nodes=spec.max_nodes, node_count=spec.initial_nodes))
    else:
        kwargs.update(dict(node_count=spec.initial_nodes))
    return kwargs

def _default_pool_taints() -> List[do.KubernetesClusterNodePoolTaintArgs]:
    key, value, effect = DEFAULT_POOL_TAINT
    return [do.KubernetesClusterNodePoolTaintArgs(key=key, value=value, effect=effect)]

# ---- Access -----------------------------------------------------------------

def _kubeconfig(cluster: do.KubernetesCluster) -> pulumi.Output[str]:
    def build(args) -> str:
        name, region, configs = args
        kc = configs[0] if configs else None
        credential = make_credential(
            name,
            kc.get("host") if kc else None,
            kc.get("cluster_ca_certificate") if kc else None,
            token=kc.get("token") if kc else None,
        )
        return render_kubeconfig(f"do-{region}-{name}", credential)

    return pulumi.Output.all(cluster.name, cluster.region, cluster.kube_configs).apply(build)

# ---- Main entry point -------------------------------------------------------

def provision_doks_cluster(*, name: str, spec: ClusterSpec, graph: DependencyGraph,
                           vpc_ip_range: Optional[str] = None) -> ClusterHandle:
    if spec.provider != PROVIDER_DIGITALOCEAN:
        raise ValueError(f"provision_doks_cluster called with a {spec.provider} spec")

    vpc = graph.add("vpc", ensure_vpc(name=name, region=spec.location, ip_range=vpc_ip_range))

    # Pick a valid DOKS version slug dynamically (avoid guessing).
    version = do.get_kubernetes_versions_output().latest_version
    version.apply(lambda v: pulumi.log.info(f"Using DOKS version for {name}: {v}"))

    doks_name = with_suffix(name, "doks")
    cluster = graph.add("cluster", do.KubernetesCluster(
        doks_name,
        name=doks_name,
        region=spec.location,
        vpc_uuid=vpc.id,
        version=version,
        node_pool=do.KubernetesClusterNodePoolArgs(
            name=f"{name}-default",
            size=DEFAULT_POOL_SIZE,
            node_count=1,
            labels=_labels_for(name, "default"),
            tags=["multicloud", name, "pool", "default"],
            taints=_default_pool_taints(),
        ),
        tags=["multicloud", name, "doks"],
        opts=graph.after("cluster", "vpc"),
    ))

    node_pool = graph.add("node-pool", do.KubernetesNodePool(
        f"{name}-primary-node-pool",
        cluster_id=cluster.id,
        **_np_common_kwargs(name, "primary", spec),
        opts=graph.after("node-pool", "cluster"),
    ))

    kubeconfig = pulumi.Output.secret(_kubeconfig(cluster))
    provider = access_provider(name=name, kubeconfig=kubeconfig, graph=graph)
    return ClusterHandle(name=name, cluster=cluster, node_pool=node_pool,
                         provider=provider, kubeconfig=kubeconfig)
