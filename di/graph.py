"""
servicegraph - Dependency Graph Export

Read-only node/edge view of the full declared graph, for visualization.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class GraphNode:
    id: str
    phase: int
    initialized: bool
    auto_init: bool = True
    singleton: bool = True


@dataclass(frozen=True)
class GraphEdge:
    """Edge from a dependency to the service that needs it."""

    source: str
    target: str

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.source, "to": self.target}


@dataclass
class DependencyGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node(self, node_id: str) -> GraphNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [asdict(node) for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def to_dot(self, name: str = "Services") -> str:
        """Graphviz DOT; initialized services green, the rest red."""
        lines = [
            f"digraph {name} {{",
            "  rankdir=TB;",
            "  node [shape=box];",
            "",
        ]
        for node in self.nodes:
            color = "green" if node.initialized else "red"
            style = "" if node.auto_init else ", style=dashed"
            lines.append(f'  "{node.id}" [color={color}{style}];')
        lines.append("")
        for edge in self.edges:
            lines.append(f'  "{edge.source}" -> "{edge.target}";')
        lines.append("}")
        return "\n".join(lines) + "\n"
