"""
Graph node entities.

A graph is a mapping of node name -> node. Internal nodes are the
organization's repositories, external nodes are third-party npm packages.
Serialized field names (aliases) are the ones the browser visualizer reads.
"""

from typing import Any, Dict, NamedTuple, Optional, Union

from pydantic import BaseModel, Field


class GraphNode(BaseModel):
    """Fields shared by every node of the dependency graph."""

    id: int = Field(..., description="Unique id across repository and package nodes")
    is_external: bool = Field(False, alias="external")
    is_linked: bool = Field(False, alias="link")
    uses: Dict[str, str] = Field(
        default_factory=dict,
        description="Dependent repository name -> version range it declares for this node",
    )

    class Config:
        populate_by_name = True


class RepositoryRecord(GraphNode):
    """One non-archived repository of the organization."""

    full_name: str = Field("", alias="fullName")
    url: str = ""
    default_branch: Optional[str] = Field(None, alias="defaultBranch")
    is_private: bool = Field(False, alias="private")
    size_kb: int = Field(0, alias="size")
    license: str = "N/A"
    description: str = ""

    # Populated once the manifest has been fetched
    current_version: Optional[str] = Field(None, alias="currVersion")
    external_dependencies: Dict[str, str] = Field(default_factory=dict, alias="extDeps")
    depend_on: Dict[str, str] = Field(
        default_factory=dict,
        alias="dependOn",
        description="Internal dependency name -> version range declared by this repository",
    )


class ExternalPackageNode(GraphNode):
    """A third-party package declared by at least one repository."""

    is_external: bool = Field(True, alias="external")
    has_further_dependencies: bool = Field(False, alias="hasDependencies")


AnyGraphNode = Union[RepositoryRecord, ExternalPackageNode]


class OrphanRecord(NamedTuple):
    """Dependency reference whose target was unknown when its manifest was processed."""

    dependency_name: str
    dependent_name: str
    version: str
    raw_name: str


def node_from_dict(data: Dict[str, Any]) -> AnyGraphNode:
    """Rebuild a node from its serialized form."""
    if data.get("external"):
        return ExternalPackageNode.model_validate(data)
    return RepositoryRecord.model_validate(data)


def node_to_dict(node: AnyGraphNode) -> Dict[str, Any]:
    return node.model_dump(by_alias=True)
