"""Cluster access shared by every provider family.

A provisioner returns a :class:`ClusterHandle` whose Kubernetes provider is
built from an :class:`AccessCredential`. The credential carries either a
direct bearer token or an exec plugin descriptor for providers that
authenticate through an external helper binary.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pulumi
import pulumi_kubernetes as k8s
import yaml

from util.errors import ClusterProvisioningError, ConfigurationError
from util.graph import DependencyGraph

PROVIDER_GKE = "gke"
PROVIDER_DIGITALOCEAN = "digitalocean"


@dataclass(frozen=True)
class ClusterSpec:
    provider: str
    location: str
    machine_type: str
    initial_nodes: int
    min_nodes: int
    max_nodes: int
    preemptible: bool = False

    def __post_init__(self):
        if not (0 < self.min_nodes <= self.initial_nodes <= self.max_nodes):
            raise ConfigurationError(
                f"node counts must satisfy 0 < min <= initial <= max, got "
                f"{self.min_nodes}/{self.initial_nodes}/{self.max_nodes}"
            )


@dataclass(frozen=True)
class ExecAuth:
    command: str
    api_version: str = "client.authentication.k8s.io/v1beta1"
    install_hint: Optional[str] = None
    provide_cluster_info: bool = False


@dataclass(frozen=True)
class AccessCredential:
    endpoint: str
    ca_certificate: str
    token: Optional[str] = None
    exec_auth: Optional[ExecAuth] = None


@dataclass(frozen=True)
class ClusterHandle:
    name: str
    cluster: pulumi.CustomResource
    node_pool: pulumi.CustomResource
    provider: k8s.Provider
    kubeconfig: pulumi.Output[str]


def make_credential(cluster_name: str, endpoint: Optional[str], ca_certificate: Optional[str], *,
                    token: Optional[str] = None,
                    exec_auth: Optional[ExecAuth] = None) -> AccessCredential:
    if not endpoint:
        raise ClusterProvisioningError(f"Cluster {cluster_name} reported no API endpoint")
    if not ca_certificate:
        raise ClusterProvisioningError(f"Cluster {cluster_name} reported no CA certificate")
    if (token is None) == (exec_auth is None):
        raise ClusterProvisioningError(
            f"Cluster {cluster_name} needs exactly one of a token or an exec plugin"
        )
    if not endpoint.startswith("https://"):
        endpoint = f"https://{endpoint}"
    return AccessCredential(endpoint=endpoint, ca_certificate=ca_certificate,
                            token=token, exec_auth=exec_auth)


def _user_entry(credential: AccessCredential) -> Dict[str, Any]:
    if credential.token is not None:
        return {"token": credential.token}

    ex = credential.exec_auth
    exec_cfg: Dict[str, Any] = {"apiVersion": ex.api_version, "command": ex.command}
    if ex.install_hint:
        exec_cfg["installHint"] = ex.install_hint
    exec_cfg["provideClusterInfo"] = ex.provide_cluster_info
    return {"exec": exec_cfg}


def render_kubeconfig(context: str, credential: AccessCredential) -> str:
    config = {
        "apiVersion": "v1",
        "clusters": [{
            "cluster": {
                "certificate-authority-data": credential.ca_certificate,
                "server": credential.endpoint,
            },
            "name": context,
        }],
        "contexts": [{
            "context": {"cluster": context, "user": context},
            "name": context,
        }],
        "current-context": context,
        "kind": "Config",
        "preferences": {},
        "users": [{"name": context, "user": _user_entry(credential)}],
    }
    return yaml.safe_dump(config, sort_keys=False)


def access_provider(*, name: str, kubeconfig: pulumi.Output[str],
                    graph: DependencyGraph) -> k8s.Provider:
    # the provider waits on the dedicated pool, never on the cluster alone
    return graph.add("access", k8s.Provider(
        f"{name}-k8s",
        kubeconfig=kubeconfig,
        enable_server_side_apply=True,
        opts=graph.after("access", "node-pool"),
    ))
