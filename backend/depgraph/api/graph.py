"""
Graph endpoints consumed by the browser visualizer.

/data serves the built snapshot; /api/... proxy the npm registry and the
bundle-size service so the page can lazily expand external packages.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from depgraph.services.registry_client import RegistryClient, RegistryError

router = APIRouter()

_PACKAGE_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._~-]*$")


def get_snapshot(request: Request) -> Dict[str, Dict[str, Any]]:
    return request.app.state.snapshot


def get_registry(request: Request) -> RegistryClient:
    return request.app.state.registry


def resolve_package_name(pkg: str, org: Optional[str] = None) -> Optional[str]:
    """
    Build "pkg" or "@org/pkg" from path segments.

    Returns None when a segment is not a valid npm name part.
    """
    if not _PACKAGE_SEGMENT.match(pkg):
        return None
    if org is None:
        return pkg
    scope = org[1:] if org.startswith("@") else org
    if not _PACKAGE_SEGMENT.match(scope):
        return None
    return f"@{scope}/{pkg}"


def _invalid_package_response() -> PlainTextResponse:
    return PlainTextResponse(
        "Pkg must be a valid package name", status_code=status.HTTP_400_BAD_REQUEST
    )


def _registry_error_response(exc: RegistryError) -> PlainTextResponse:
    status_code = (
        status.HTTP_404_NOT_FOUND if exc.status_code == 404 else status.HTTP_502_BAD_GATEWAY
    )
    return PlainTextResponse(str(exc), status_code=status_code)


@router.get("/data")
async def get_graph_data(snapshot: Dict[str, Dict[str, Any]] = Depends(get_snapshot)):
    """Full dependency graph keyed by node name."""
    return JSONResponse(snapshot)


async def _bundle_size(name: Optional[str], registry: RegistryClient):
    if name is None:
        return _invalid_package_response()
    try:
        return await registry.fetch_bundle_size(name)
    except RegistryError as exc:
        return _registry_error_response(exc)


async def _manifest(name: Optional[str], registry: RegistryClient):
    if name is None:
        return _invalid_package_response()
    try:
        return await registry.fetch_manifest(name)
    except RegistryError as exc:
        return _registry_error_response(exc)


@router.get("/api/size/{pkg}")
async def get_bundle_size(pkg: str, registry: RegistryClient = Depends(get_registry)):
    return await _bundle_size(resolve_package_name(pkg), registry)


@router.get("/api/size/{pkg}/{org}")
async def get_scoped_bundle_size(
    pkg: str, org: str, registry: RegistryClient = Depends(get_registry)
):
    return await _bundle_size(resolve_package_name(pkg, org), registry)


@router.get("/api/{pkg}")
async def get_package_manifest(pkg: str, registry: RegistryClient = Depends(get_registry)):
    """Latest registry manifest of an unscoped package."""
    return await _manifest(resolve_package_name(pkg), registry)


@router.get("/api/{pkg}/{org}")
async def get_scoped_package_manifest(
    pkg: str, org: str, registry: RegistryClient = Depends(get_registry)
):
    """Latest registry manifest of "@org/pkg"."""
    return await _manifest(resolve_package_name(pkg, org), registry)
