"""
Graph build orchestration.

Runs the Lister -> manifest fan-out -> enrichment fan-out -> orphan sweep
sequence against a GraphResolver. Each fan-out is a join-all barrier: every
task reports a result value instead of raising, so one failing repository or
package never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from depgraph.config import settings
from depgraph.core.tracing import TracingContext
from depgraph.entities import OrphanRecord, RepositoryRecord
from depgraph.services.github.exceptions import ManifestFetchError, ManifestParseError
from depgraph.services.github.github_client import GithubClient
from depgraph.services.graph_resolver import GraphResolver
from depgraph.services.registry_client import RegistryClient, RegistryError

logger = logging.getLogger(__name__)


@dataclass
class FetchOutcome:
    """Result of fetching and classifying one repository's manifest."""

    repo_name: str
    ok: bool
    error: Optional[BaseException] = None


@dataclass
class EnrichmentOutcome:
    """Result of one registry lookup for an external package."""

    package_name: str
    has_further_dependencies: bool = False
    error: Optional[BaseException] = None


@dataclass
class GraphBuildResult:
    org_name: str
    snapshot: Dict[str, Dict[str, Any]]
    unresolved_orphans: List[OrphanRecord] = field(default_factory=list)
    failed_repositories: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0


async def fetch_repository_manifest(
    resolver: GraphResolver,
    github: GithubClient,
    record: RepositoryRecord,
    repo_name: str,
    semaphore: asyncio.Semaphore,
) -> FetchOutcome:
    TracingContext.set(repo_name=repo_name, phase="manifest")
    logger.info(f"- Processing {record.full_name}")
    try:
        async with semaphore:
            raw_manifest = await github.fetch_manifest(record.full_name)
        resolver.process_manifest(repo_name, raw_manifest)
    except (ManifestFetchError, ManifestParseError) as exc:
        logger.warning(f"Failed to retrieve project: {record.full_name}, {exc}")
        return FetchOutcome(repo_name=repo_name, ok=False, error=exc)
    return FetchOutcome(repo_name=repo_name, ok=True)


async def enrich_external_package(
    registry: RegistryClient,
    name: str,
    semaphore: asyncio.Semaphore,
) -> EnrichmentOutcome:
    TracingContext.set(package_name=name, phase="enrich")
    try:
        async with semaphore:
            has_dependencies = await registry.has_dependencies(name)
    except RegistryError as exc:
        logger.debug(f"Registry lookup failed for {name}: {exc}")
        return EnrichmentOutcome(package_name=name, error=exc)
    return EnrichmentOutcome(package_name=name, has_further_dependencies=has_dependencies)


async def _settle(awaitables: List, labels: List[str], phase: str) -> List:
    """Wait for every awaitable; unexpected exceptions are logged and returned."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    for label, result in zip(labels, results):
        if isinstance(result, Exception):
            logger.error(f"Unexpected {phase} failure for {label}", exc_info=result)
    return results


async def build_graph(
    github: GithubClient,
    registry: RegistryClient,
    org_name: Optional[str] = None,
    npm_scope: Optional[str] = None,
    package_exceptions: Optional[Iterable[str]] = None,
    filter_org: Optional[bool] = None,
    max_concurrency: Optional[int] = None,
) -> GraphBuildResult:
    """
    Build the dependency graph of an organization.

    Only the repository listing is fatal; its exceptions propagate. Every
    other failure is isolated to the repository or package it concerns.
    """
    org_name = org_name or settings.ORG_NAME
    started = time.perf_counter()
    TracingContext.clear()
    TracingContext.set(run_id=TracingContext.new_run_id(), org_name=org_name, phase="list")

    resolver = GraphResolver(
        npm_scope=npm_scope or settings.npm_scope,
        package_exceptions=(
            settings.package_exceptions if package_exceptions is None else package_exceptions
        ),
        filter_org=settings.FILTER_ORG if filter_org is None else filter_org,
    )
    semaphore = asyncio.Semaphore(max_concurrency or settings.MAX_CONCURRENCY)

    descriptors = await github.list_org_repositories(org_name)
    resolver.seed_repositories(descriptors)
    repositories = dict(resolver.nodes)
    logger.info(f"{len(repositories)} repositories kept out of {len(descriptors)} listed")

    repo_names = list(repositories)
    fetch_results = await _settle(
        [
            fetch_repository_manifest(resolver, github, repositories[name], name, semaphore)
            for name in repo_names
        ],
        repo_names,
        "manifest",
    )
    failed_repositories = [
        name
        for name, result in zip(repo_names, fetch_results)
        if not isinstance(result, FetchOutcome) or not result.ok
    ]

    external_names = resolver.external_dependency_names
    enrich_results = await _settle(
        [enrich_external_package(registry, name, semaphore) for name in external_names],
        external_names,
        "enrichment",
    )
    for name, result in zip(external_names, enrich_results):
        has_dependencies = (
            result.has_further_dependencies if isinstance(result, EnrichmentOutcome) else False
        )
        resolver.install_external_package(name, has_dependencies)

    unresolved = resolver.reconcile_orphans()
    resolver.freeze()

    elapsed = time.perf_counter() - started
    logger.info(
        f"Graph for {org_name} built in {elapsed:.2f}s: {len(resolver.nodes)} nodes, "
        f"{len(failed_repositories)} failed repositories"
    )
    if unresolved:
        logger.info(
            "Orphans: "
            + ", ".join(f"{orphan.raw_name} (from {orphan.dependent_name})" for orphan in unresolved)
        )
    else:
        logger.info("Orphans: none")

    return GraphBuildResult(
        org_name=org_name,
        snapshot=resolver.snapshot(),
        unresolved_orphans=unresolved,
        failed_repositories=failed_repositories,
        elapsed_seconds=elapsed,
    )
