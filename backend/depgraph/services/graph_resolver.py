"""
Dependency graph resolution.

The resolver owns every piece of mutable state of a build: the node mapping,
the orphan buffer, the package-name -> repository-name alias index and the set
of external dependency names. Its lifecycle is:

1. seed_repositories()          - one RepositoryRecord per listed repository
2. process_manifest()           - once per repository, in any order
3. install_external_package()   - once per name in external_dependency_names
4. reconcile_orphans()          - single sweep over the buffered orphans
5. freeze()                     - the graph becomes read-only

Edges are stored twice. A repository's ``depend_on`` holds the internal
packages it declares; the target node's ``uses`` holds the dependent
repository. Both sides always carry the same version range.
"""

from __future__ import annotations

import json
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from depgraph.entities import (
    AnyGraphNode,
    ExternalPackageNode,
    OrphanRecord,
    RepositoryRecord,
    node_to_dict,
)
from depgraph.services.github.exceptions import ManifestParseError

logger = logging.getLogger(__name__)


class IdGenerator:
    """Monotonic id source shared by repository and package nodes."""

    def __init__(self, start: int = 0):
        self._value = start

    def next_id(self) -> int:
        self._value += 1
        return self._value


def strip_scope(name: str) -> str:
    """Drop a "@scope/" prefix and lower-case the remaining package name."""
    if "/" in name:
        return name.split("/", 1)[1].lower()
    return name.lower()


def clean_package_name(name: str) -> str:
    if name.startswith("@"):
        return strip_scope(name)
    return name.lower()


def _as_version(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


class GraphResolver:
    """Builds the internal/external dependency graph of an organization."""

    def __init__(
        self,
        npm_scope: str,
        package_exceptions: Iterable[str] = (),
        filter_org: bool = True,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.npm_scope = npm_scope
        self.package_exceptions = {name.lower() for name in package_exceptions}
        self.filter_org = filter_org
        self.ids = id_generator or IdGenerator()

        self._nodes: Dict[str, AnyGraphNode] = {}
        self.orphans: List[OrphanRecord] = []
        self.unresolved_orphans: List[OrphanRecord] = []
        self.aliases: Dict[str, str] = {}
        # insertion-ordered set
        self._external_names: Dict[str, None] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Mapping[str, AnyGraphNode]:
        return MappingProxyType(self._nodes)

    @property
    def external_dependency_names(self) -> List[str]:
        return list(self._external_names)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """JSON-ready copy of the graph keyed by node name."""
        return {name: node_to_dict(node) for name, node in self._nodes.items()}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Graph is frozen; no further mutation is allowed")

    def freeze(self) -> None:
        self._frozen = True

    def seed_repositories(self, descriptors: Iterable[Dict[str, Any]]) -> List[RepositoryRecord]:
        """
        Create one node per listed repository.

        Archived repositories and repositories in the exception set are skipped.
        Returns the created records in listing order.
        """
        self._ensure_mutable()
        created: List[RepositoryRecord] = []
        for row in descriptors:
            name = (row.get("name") or "").lower()
            if not name or row.get("archived") or name in self.package_exceptions:
                continue
            if name in self._nodes:
                logger.warning(f"Duplicate repository name {name}, keeping the first one")
                continue

            license_info = row.get("license") or {}
            record = RepositoryRecord(
                id=self.ids.next_id(),
                full_name=row.get("full_name") or name,
                url=row.get("html_url") or "",
                default_branch=row.get("default_branch"),
                is_private=bool(row.get("private")),
                size_kb=row.get("size") or 0,
                license=license_info.get("name") or "N/A",
                description=row.get("description") or "",
            )
            self._nodes[name] = record
            created.append(record)
        return created

    def process_manifest(self, repo_name: str, raw_manifest: str) -> None:
        """
        Classify the dependencies of one repository's package.json.

        Known internal dependencies are linked in both directions right away;
        unknown ones are buffered as orphans for reconcile_orphans().

        Raises:
            ManifestParseError: the manifest is not a JSON object. The graph is
                left untouched in that case.
            KeyError: repo_name was never seeded.
        """
        self._ensure_mutable()
        repo = self._nodes[repo_name]
        if not isinstance(repo, RepositoryRecord):
            raise KeyError(repo_name)

        try:
            manifest = json.loads(raw_manifest)
        except ValueError as exc:
            raise ManifestParseError(f"Malformed package.json: {exc}", repository=repo_name) from exc
        if not isinstance(manifest, dict):
            raise ManifestParseError("package.json is not a JSON object", repository=repo_name)

        dependencies = manifest.get("dependencies") or {}
        dev_dependencies = manifest.get("devDependencies") or {}
        if not isinstance(dependencies, dict) or not isinstance(dev_dependencies, dict):
            raise ManifestParseError("Dependency sections must be JSON objects", repository=repo_name)

        full_dependencies = {
            name: _as_version(version)
            for name, version in {**dependencies, **dev_dependencies}.items()
        }
        internal_names = list(full_dependencies)
        external_names = list(dependencies)
        if self.filter_org:
            internal_names = [name for name in internal_names if name.startswith(self.npm_scope)]
            external_names = [name for name in external_names if not name.startswith(self.npm_scope)]

        version = manifest.get("version")
        repo.current_version = version if isinstance(version, str) else None
        repo.external_dependencies = {name: full_dependencies[name] for name in external_names}

        declared_name = manifest.get("name")
        if isinstance(declared_name, str) and declared_name:
            clean_name = clean_package_name(declared_name)
            if clean_name != repo_name:
                self.aliases[clean_name] = repo_name

        for name in external_names:
            self._external_names.setdefault(name, None)

        for raw_name in internal_names:
            dep_name = strip_scope(raw_name)
            if dep_name in self.package_exceptions or dep_name == repo_name:
                continue

            dep_version = full_dependencies[raw_name]
            if dep_name in self._nodes:
                repo.depend_on[dep_name] = dep_version
                self._nodes[dep_name].uses[repo_name] = dep_version
            else:
                self.orphans.append(OrphanRecord(dep_name, repo_name, dep_version, raw_name))

    def install_external_package(
        self, name: str, has_further_dependencies: bool
    ) -> Optional[ExternalPackageNode]:
        """
        Add the node of an external package with its reverse "uses" index.

        Repository nodes are never replaced: when an external package has the
        name of a repository, nothing is installed and None is returned.
        """
        self._ensure_mutable()
        existing = self._nodes.get(name)
        if isinstance(existing, RepositoryRecord):
            logger.warning(
                f"External package {name} has the name of a repository, keeping the repository node"
            )
            return None

        uses: Dict[str, str] = {}
        for repo_name, node in self._nodes.items():
            if node.is_external or node.is_linked:
                continue
            if name in node.external_dependencies:
                uses[repo_name] = node.external_dependencies[name]

        package = ExternalPackageNode(
            id=self.ids.next_id(),
            has_further_dependencies=has_further_dependencies,
            uses=uses,
        )
        self._nodes[name] = package
        return package

    def reconcile_orphans(self) -> List[OrphanRecord]:
        """
        Resolve buffered orphans through the alias index, in recording order.

        This is a single sweep: an orphan only resolves when its dependency
        name is the declared package name of some repository. Orphans that
        cannot be resolved, including those whose dependent repository cannot
        be identified, produce no edge and are returned.
        """
        self._ensure_mutable()
        unresolved: List[OrphanRecord] = []
        for orphan in self.orphans:
            target_name = self.aliases.get(orphan.dependency_name)
            if target_name is None or target_name not in self._nodes:
                unresolved.append(orphan)
                continue

            if orphan.dependent_name in self._nodes:
                dependent_name = orphan.dependent_name
            else:
                dependent_name = self.aliases.get(orphan.dependent_name)
            if dependent_name is None or dependent_name not in self._nodes:
                logger.warning(
                    f"Dropping edge {orphan.dependent_name} -> {target_name}: "
                    "dependent is not a graph node"
                )
                unresolved.append(orphan)
                continue
            if dependent_name == target_name:
                continue

            self._nodes[target_name].uses[dependent_name] = orphan.version
            dependent = self._nodes[dependent_name]
            if not dependent.is_external:
                dependent.depend_on[target_name] = orphan.version

        self.unresolved_orphans = unresolved
        return unresolved
