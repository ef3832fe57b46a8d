"""Read-only dependency analysis over a container's registrations.

Nothing here constructs services; the graph only follows the dependency tokens
each descriptor declares, using the last registration of every token (the one
`Provider.get` would pick).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ._tokens import token_name


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from ._descriptor import Descriptor, Lifetime


class NodeMarker(Enum):
    CIRCULAR = "circular"
    NOT_REGISTERED = "not_registered"


@dataclass
class DependencyNode:
    token: Any
    name: str
    lifetime: Lifetime | NodeMarker
    depth: int
    dependencies: list[DependencyNode] = field(default_factory=list)
    circular_path: tuple[Any, ...] = ()

    @property
    def is_circular(self) -> bool:
        return self.lifetime is NodeMarker.CIRCULAR


@dataclass(frozen=True)
class CircularPath:
    """A cycle, closed by repeating its first token: (A, B, A)."""

    path: tuple[Any, ...]

    @property
    def names(self) -> list[str]:
        return [token_name(t) for t in self.path]


class DependencyGraph:
    def __init__(self, descriptors: Mapping[Any, Sequence[Descriptor]]) -> None:
        self._descriptors = descriptors

    def _lookup(self, token: Any) -> Descriptor | None:
        descriptors = self._descriptors.get(token)
        return descriptors[-1] if descriptors else None

    def build_tree(self, token: Any) -> DependencyNode:
        return self._expand(token, depth=0, path=())

    def _expand(self, token: Any, depth: int, path: tuple[Any, ...]) -> DependencyNode:
        if token in path:
            return DependencyNode(
                token=token,
                name=token_name(token),
                lifetime=NodeMarker.CIRCULAR,
                depth=depth,
                circular_path=(*path, token),
            )

        desc = self._lookup(token)
        if desc is None:
            return DependencyNode(token=token, name=token_name(token), lifetime=NodeMarker.NOT_REGISTERED, depth=depth)

        node = DependencyNode(token=token, name=token_name(token), lifetime=desc.lifetime, depth=depth)
        child_path = (*path, token)
        node.dependencies = [self._expand(dep, depth + 1, child_path) for dep in desc.dependencies]
        return node

    def find_circular_paths(self) -> list[CircularPath]:
        found: list[CircularPath] = []
        visited: set[Any] = set()
        visiting: list[Any] = []

        def visit(token: Any) -> None:
            if token in visiting:
                start = visiting.index(token)
                found.append(CircularPath(path=(*visiting[start:], token)))
                return
            if token in visited:
                return

            visited.add(token)
            visiting.append(token)
            desc = self._lookup(token)
            if desc is not None:
                for dep in desc.dependencies:
                    visit(dep)
            visiting.pop()

        for token in list(self._descriptors):
            if token not in visited:
                visit(token)

        return found

    def render_tree(self, token: Any) -> str:
        lines: list[str] = []

        def render(node: DependencyNode, prefix: str, is_last: bool) -> None:
            connector = "└── " if is_last else "├── "
            label = "CIRCULAR" if node.is_circular else node.lifetime.name
            lines.append(f"{prefix}{connector}{node.name} [{label}]")

            child_prefix = prefix + ("    " if is_last else "│   ")
            for i, child in enumerate(node.dependencies):
                render(child, child_prefix, i == len(node.dependencies) - 1)

        render(self.build_tree(token), "", True)
        return "\n".join(lines)

    def render_circular_paths(self) -> str:
        cycles = self.find_circular_paths()
        if not cycles:
            return "No circular dependencies found."

        lines = [f"Found {len(cycles)} circular dependency path(s):", ""]
        for i, cycle in enumerate(cycles, start=1):
            lines.append(f"Circular dependency {i}:")
            lines.append("  " + " -> ".join(cycle.names))
            lines.append("")
        return "\n".join(lines)
