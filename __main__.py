import pulumi
from util.config import load_settings


# `multicloud` config namespace + process environment
settings = load_settings()

from workloads.fleet import deploy_fleet, targets_from_settings

# Every target is its own cluster, storage and app; none waits on another.
targets = targets_from_settings(settings)
deployed = deploy_fleet(targets, settings)

pulumi.export("appUrls", [d.url.to_export() for d in deployed])
pulumi.export("kubeconfigs", {d.target.name: d.target.cluster.kubeconfig for d in deployed})
pulumi.export("dependencyGraphs", {d.target.name: d.graph.to_dict() for d in deployed})
