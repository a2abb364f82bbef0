"""Dependency resolver for artifact requirement tables."""

from collections import deque
from typing import Optional

from .artifacts import Artifact, ReconciliationRequirement
from .catalog import Catalog
from .config import FeatureFlags
from .errors import CircularDependencyError


def base_name(artifact_name: str) -> str:
    """``ios_app_icon[20x20@1x]`` -> ``ios_app_icon``."""
    return artifact_name.split("[", 1)[0]


class DependencyResolver:
    """Orders the artifacts of a catalog and pairs them with their requirements."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog
        self._graph: dict[str, list[str]] = {}
        self._build_graph()

    def _build_graph(self) -> None:
        """Build dependency graph from the catalog."""
        names = {decl.name for decl in self.catalog.artifacts}
        for decl in self.catalog.artifacts:
            self._graph[decl.name] = [dep for dep in decl.depends_on if dep in names]

    def get_order(self) -> list[str]:
        """
        Get artifact declarations in topological order.
        Artifacts nothing depends on run first; peers keep catalog order.
        """
        # in_degree[X] = number of dependencies X has
        in_degree = {name: len(deps) for name, deps in self._graph.items()}

        queue = deque([name for name, degree in in_degree.items() if degree == 0])
        order = []

        while queue:
            current = queue.popleft()
            order.append(current)

            # For each artifact that depends on current, decrease its in_degree
            for name, deps in self._graph.items():
                if current in deps:
                    in_degree[name] -= 1
                    if in_degree[name] == 0:
                        queue.append(name)

        if len(order) != len(self._graph):
            missing = set(self._graph.keys()) - set(order)
            raise CircularDependencyError(missing)

        return order

    def resolve(
        self,
        flags: FeatureFlags,
        platforms: Optional[list[str]] = None,
    ) -> list[tuple[Artifact, ReconciliationRequirement]]:
        """Active ``(Artifact, ReconciliationRequirement)`` pairs in run order."""
        rank = {name: idx for idx, name in enumerate(self.get_order())}
        pairs = self.catalog.expand(flags, platforms)
        return sorted(pairs, key=lambda pair: rank[base_name(pair[0].name)])

    def dependents(self, name: str) -> list[str]:
        """Artifacts that directly depend on ``name``."""
        return [other for other, deps in self._graph.items() if name in deps]

    def validate(self) -> list[str]:
        """Validate the requirement table and return any issues."""
        issues = []

        try:
            self.get_order()
        except CircularDependencyError as e:
            issues.append(str(e))

        issues.extend(self.catalog.validate())
        return issues

    def print_graph(self, flags: Optional[FeatureFlags] = None) -> str:
        """Return ASCII representation of the dependency graph."""
        title = str(self.catalog.source) if self.catalog.source else "bundled catalog"
        lines = [f"Catalog: {title}", ""]

        try:
            order = self.get_order()
        except CircularDependencyError:
            order = list(self._graph.keys())

        active: Optional[set[str]] = None
        if flags is not None:
            active = {base_name(a.name) for a, _ in self.catalog.expand(flags)}

        for name in order:
            decl = self.catalog.artifact(name)
            deps = self._graph[name]
            marker = ""
            if active is not None:
                marker = " *" if name in active else ""
            label = f"{name} ({decl.platform}, {decl.format.value}){marker}"

            if deps:
                lines.append(f"  [{label}] → {', '.join(deps)}")
            else:
                lines.append(f"  [{label}] (no deps)")

        return "\n".join(lines)
