"""FastAPI application and command-line entry point."""
import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from depgraph.api import graph, health
from depgraph.config import settings
from depgraph.core.logging import setup_logging
from depgraph.services.github.exceptions import GithubError
from depgraph.services.github.github_client import GithubClient
from depgraph.services.graph_builder import build_graph
from depgraph.services.registry_client import RegistryClient
from depgraph.services.snapshot_store import SnapshotNotFoundError, SnapshotStore

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


def create_app(
    snapshot: Dict[str, Dict[str, Any]],
    registry: Optional[RegistryClient] = None,
    org_name: Optional[str] = None,
) -> FastAPI:
    """Build the presentation server around a finished, read-only snapshot."""
    registry = registry or RegistryClient()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await registry.aclose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Internal dependency graph of a GitHub organization",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.snapshot = snapshot
    app.state.registry = registry
    app.state.org_name = org_name or settings.ORG_NAME

    app.mount("/public", StaticFiles(directory=STATIC_DIR), name="public")

    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(STATIC_DIR / "index.html", media_type="text/html")

    app.include_router(health.router, tags=["Health"])
    app.include_router(graph.router, tags=["Graph"])
    return app


async def fetch_snapshot(org_name: str) -> Dict[str, Dict[str, Any]]:
    async with GithubClient() as github, RegistryClient() as registry:
        result = await build_graph(github, registry, org_name=org_name)
    return result.snapshot


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="depgraph",
        description="Build and serve the dependency graph of a GitHub organization",
    )
    parser.add_argument(
        "--skip",
        action="store_true",
        help="serve the cached snapshot instead of fetching GitHub",
    )
    parser.add_argument("--org", default=None, help="organization name (default: ORG_NAME)")
    parser.add_argument("--port", type=int, default=None, help="HTTP port (default: HTTP_PORT)")
    args = parser.parse_args(argv)

    setup_logging()
    org_name = args.org or settings.ORG_NAME
    store = SnapshotStore()

    if args.skip:
        try:
            snapshot = store.load(org_name)
        except (SnapshotNotFoundError, ValueError) as exc:
            logger.error(f"Cannot serve cached snapshot: {exc}")
            return 1
    else:
        try:
            snapshot = asyncio.run(fetch_snapshot(org_name))
        except GithubError as exc:
            logger.error(f"Failed to build the graph of {org_name}: {exc}")
            return 1
        store.save(org_name, snapshot)

    import uvicorn

    port = args.port or settings.HTTP_PORT
    logger.info(f"HTTP Server started at http://localhost:{port}")
    uvicorn.run(create_app(snapshot, org_name=org_name), host="0.0.0.0", port=port)
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
