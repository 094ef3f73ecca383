"""Explicit ordering edges between the resources of one target.

Pulumi already orders resources whose inputs reference each other's outputs.
Those edges are invisible in the program text, so every resource of a target
is registered here under a short node name and created with the
``ResourceOptions`` this graph hands out. The recorded edges are exported with
the stack and are what the tests assert ordering against.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Set

import pulumi


class DependencyGraph:
    """Nodes and prerequisite edges for a single cluster target."""

    def __init__(self, scope: str):
        self.scope = scope
        self._resources: Dict[str, pulumi.Resource] = {}
        self._edges: Dict[str, Set[str]] = {}

    def after(self, node: str, *prerequisites: str, **opts: Any) -> pulumi.ResourceOptions:
        """Record that ``node`` needs ``prerequisites`` and return its options.

        Extra keyword arguments (``provider``, ``parent`` ...) are passed through
        to ``pulumi.ResourceOptions``.

        Raises:
            KeyError: If a prerequisite has not been added yet.
        """
        missing = [p for p in prerequisites if p not in self._resources]
        if missing:
            raise KeyError(f"{self.scope}: {node} depends on unregistered {missing}")
        self._edges.setdefault(node, set()).update(prerequisites)
        depends_on = [self._resources[p] for p in prerequisites]
        return pulumi.ResourceOptions(depends_on=depends_on or None, **opts)

    def add(self, node: str, resource: pulumi.Resource) -> pulumi.Resource:
        if node in self._resources:
            raise ValueError(f"{self.scope}: node {node!r} already registered")
        self._resources[node] = resource
        self._edges.setdefault(node, set())
        return resource

    def resource(self, node: str) -> pulumi.Resource:
        return self._resources[node]

    def has(self, node: str) -> bool:
        return node in self._resources

    def dependencies(self, node: str) -> Set[str]:
        return set(self._edges.get(node, set()))

    def provision_order(self, nodes: Optional[List[str]] = None) -> List[str]:
        """Topological order of ``nodes`` (default: all), prerequisites first.

        Raises:
            RuntimeError: If the edges form a cycle.
        """
        nodes = list(self._edges) if nodes is None else list(nodes)

        depends_on = {n: self._edges.get(n, set()).intersection(nodes) for n in nodes}
        depended_by: Dict[str, Set[str]] = {n: set() for n in nodes}
        for n, deps in depends_on.items():
            for dep in deps:
                depended_by[dep].add(n)

        # Kahn's algorithm
        result: List[str] = []
        queue = [n for n in nodes if not depends_on[n]]
        while queue:
            queue.sort()
            current = queue.pop(0)
            result.append(current)
            for dependent in depended_by[current]:
                depends_on[dependent].discard(current)
                if not depends_on[dependent]:
                    queue.append(dependent)

        if len(result) != len(nodes):
            missing = set(nodes) - set(result)
            raise RuntimeError(f"{self.scope}: circular dependencies among {missing}")
        return result

    def to_dict(self) -> Dict[str, List[str]]:
        return {n: sorted(self._edges[n]) for n in self.provision_order()}
