"""Shared fixtures: a fake cloud/Kubernetes provider on Pulumi's mock runtime."""

import threading
from typing import Any, Dict, List, Optional, Tuple

import pulumi
import pytest


class BindingPreconditionError(Exception):
    """A claim names a volume whose storage class differs from its own."""


class FakeProvider(pulumi.runtime.Mocks):
    """Fabricates provider outputs and records every registered resource.

    Load balancer ingress defaults to ``{"ip": "10.0.0.5"}``; override per
    target with :meth:`set_ingress`. :meth:`hold_service` keeps one target's
    service registration open until :meth:`release` or the timeout.
    """

    def __init__(self):
        self.resources: List[Tuple[str, str, Dict[str, Any]]] = []
        self.calls: List[str] = []
        self._ingress: Dict[str, Dict[str, str]] = {}
        self._holds: Dict[str, threading.Event] = {}
        self.held: Dict[str, bool] = {}
        self._lock = threading.Lock()

    # ---- knobs -----------------------------------------------------------

    def set_ingress(self, target: str, ingress: Dict[str, str]):
        self._ingress[target] = ingress

    def hold_service(self, target: str) -> threading.Event:
        event = threading.Event()
        self._holds[f"{target}-scaffold-app"] = event
        return event

    # ---- inspection ------------------------------------------------------

    def of_type(self, typ: str) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [(name, inputs) for t, name, inputs in self.resources if t == typ]

    def one(self, typ: str, name: str) -> Dict[str, Any]:
        matches = [inputs for n, inputs in self.of_type(typ) if n == name]
        assert len(matches) == 1, f"expected one {typ} named {name}, got {len(matches)}"
        return matches[0]

    def names(self) -> List[str]:
        with self._lock:
            return [name for _, name, _ in self.resources]

    def check_bindings(self):
        """Reject every claim whose volume carries another storage class."""
        volumes = {
            name: inputs["spec"].get("storageClassName")
            for name, inputs in self.of_type("kubernetes:core/v1:PersistentVolume")
        }
        for name, inputs in self.of_type("kubernetes:core/v1:PersistentVolumeClaim"):
            check_binding(volumes, name, inputs["spec"])

    # ---- pulumi.runtime.Mocks ---------------------------------------------

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        inputs = dict(args.inputs)
        with self._lock:
            self.resources.append((args.typ, args.name, inputs))

        outputs = dict(inputs)
        outputs.setdefault("name", args.name)

        if args.typ == "gcp:container/cluster:Cluster":
            outputs["endpoint"] = "34.1.2.3"
            outputs["masterAuth"] = {
                "clientCertificateConfig": {"issueClientCertificate": False},
                "clusterCaCertificate": "Q0EtQ0VSVA==",
            }
        elif args.typ == "gcp:filestore/instance:Instance":
            outputs["networks"] = [
                dict(n, ipAddresses=["10.20.0.2"]) for n in inputs.get("networks", [])
            ]
        elif args.typ == "digitalocean:index/kubernetesCluster:KubernetesCluster":
            outputs["kubeConfigs"] = [{
                "host": "https://doks.example.com",
                "clusterCaCertificate": "RE8tQ0EtQ0VSVA==",
                "token": "do-token",
                "rawConfig": "",
            }]
        elif args.typ.startswith("kubernetes:"):
            metadata = dict(inputs.get("metadata") or {})
            metadata.setdefault("name", args.name)
            outputs["metadata"] = metadata
            if args.typ == "kubernetes:core/v1:Service":
                self._wait_if_held(args.name)
                target = args.name[: -len("-scaffold-app")]
                ingress = self._ingress.get(target, {"ip": "10.0.0.5"})
                outputs["status"] = {"loadBalancer": {"ingress": [ingress]}}

        return f"{args.name}_id", outputs

    def call(self, args: pulumi.runtime.MockCallArgs):
        self.calls.append(args.token)
        if args.token == "gcp:container/getEngineVersions:getEngineVersions":
            return {"latestMasterVersion": "1.30.5-gke.100"}
        if args.token == "digitalocean:index/getKubernetesVersions:getKubernetesVersions":
            return {"latestVersion": "1.31.1-do.0", "validVersions": ["1.31.1-do.0"]}
        return {}

    def _wait_if_held(self, name: str):
        event = self._holds.get(name)
        if event is not None:
            self.held[name] = event.wait(timeout=10)


def check_binding(volumes: Dict[str, Optional[str]], claim_name: str, claim_spec: Dict[str, Any]):
    volume = claim_spec.get("volumeName")
    if volume not in volumes:
        raise BindingPreconditionError(f"{claim_name}: no volume named {volume!r}")
    if volumes[volume] != claim_spec.get("storageClassName"):
        raise BindingPreconditionError(
            f"{claim_name}: storage class {claim_spec.get('storageClassName')!r} "
            f"does not match volume {volume} ({volumes[volume]!r})"
        )


@pytest.fixture
def fake():
    provider = FakeProvider()
    pulumi.runtime.set_mocks(provider, project="multicloud", stack="test", preview=False)
    return provider
