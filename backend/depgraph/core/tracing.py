"""
Tracing Context - Task-local context for graph build logging.

Each repository fetch and package enrichment runs in its own asyncio task, and
asyncio copies the current context into every task it creates. Values set here
inside a task therefore stay local to that task's log lines.

Usage:
    # Set context at the start of a build
    TracingContext.set(run_id=TracingContext.new_run_id(), org_name="SlimIO")

    # Inside a per-repository task
    TracingContext.set(repo_name="core", phase="manifest")

    # Get context (automatically added to JSONFormatter logs)
    ctx = TracingContext.get()

    # Prefix for text logs
    prefix = TracingContext.get_log_prefix()  # "[run=abc-1234 repo=core]"
"""

import uuid
from contextvars import ContextVar
from typing import Dict

_run_id: ContextVar[str] = ContextVar("run_id", default="")
_org_name: ContextVar[str] = ContextVar("org_name", default="")
_repo_name: ContextVar[str] = ContextVar("repo_name", default="")
_package_name: ContextVar[str] = ContextVar("package_name", default="")
_phase: ContextVar[str] = ContextVar("phase", default="")


class TracingContext:
    """Task-local tracing context for a graph build."""

    @staticmethod
    def set(
        run_id: str = "",
        org_name: str = "",
        repo_name: str = "",
        package_name: str = "",
        phase: str = "",
    ) -> None:
        """Set tracing context for current execution."""
        if run_id:
            _run_id.set(run_id)
        if org_name:
            _org_name.set(org_name)
        if repo_name:
            _repo_name.set(repo_name)
        if package_name:
            _package_name.set(package_name)
        if phase:
            _phase.set(phase)

    @staticmethod
    def get() -> Dict[str, str]:
        """Get current tracing context as dict."""
        return {
            "run_id": _run_id.get(),
            "org_name": _org_name.get(),
            "repo_name": _repo_name.get(),
            "package_name": _package_name.get(),
            "phase": _phase.get(),
        }

    @staticmethod
    def new_run_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def get_log_prefix() -> str:
        """Get a formatted prefix for manual logging."""
        parts = []
        run_id = _run_id.get()
        if run_id:
            parts.append(f"run={run_id[:8]}")
        if _repo_name.get():
            parts.append(f"repo={_repo_name.get()}")
        if _package_name.get():
            parts.append(f"pkg={_package_name.get()}")
        return f"[{' '.join(parts)}]" if parts else ""

    @staticmethod
    def clear() -> None:
        """Clear all tracing context."""
        _run_id.set("")
        _org_name.set("")
        _repo_name.set("")
        _package_name.set("")
        _phase.set("")
