"""Graph entity models - the node types of the dependency graph"""

from .graph_node import (
    AnyGraphNode,
    ExternalPackageNode,
    GraphNode,
    OrphanRecord,
    RepositoryRecord,
    node_from_dict,
    node_to_dict,
)

__all__ = [
    "AnyGraphNode",
    "ExternalPackageNode",
    "GraphNode",
    "OrphanRecord",
    "RepositoryRecord",
    "node_from_dict",
    "node_to_dict",
]
