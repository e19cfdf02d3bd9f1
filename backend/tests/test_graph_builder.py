import asyncio
import json
import unittest

import httpx

from depgraph.core.tracing import TracingContext
from depgraph.services.github.exceptions import RepositoryListingError
from depgraph.services.github.github_client import GithubClient
from depgraph.services.graph_builder import build_graph
from depgraph.services.registry_client import RegistryClient

GITHUB_URL = "https://api.github.test"
REGISTRY_URL = "https://registry.test"


def _repo(name, archived=False):
    return {
        "id": len(name),
        "name": name,
        "full_name": f"SlimIO/{name}",
        "html_url": f"https://github.com/SlimIO/{name}",
        "archived": archived,
        "private": False,
        "size": 12,
        "license": {"name": "MIT"},
        "description": None,
        "default_branch": "master",
    }


MANIFESTS = {
    "core": {
        "name": "@slimio/core",
        "version": "2.0.0",
        "dependencies": {"leftpad": "^1.0.0", "express": "^4.17.0"},
    },
    "widget": {
        "name": "@slimio/widget",
        "version": "1.4.0",
        "dependencies": {"@slimio/core": "^2.0.0", "express": "^4.18.0"},
    },
    "pkg-a": {
        "name": "@slimio/real-a",
        "version": "0.1.0",
        "dependencies": {"@slimio/real-b": "^3.0.0", "@slimio/missing-lib": "^1.0.0"},
    },
    "pkg-b": {"name": "@slimio/real-b", "version": "3.0.1"},
}

REGISTRY = {
    "/leftpad": {"dist-tags": {"latest": "1.3.0"}, "versions": {"1.3.0": {"name": "leftpad"}}},
    "/express": {
        "dist-tags": {"latest": "4.18.2"},
        "versions": {"4.18.2": {"name": "express", "dependencies": {"accepts": "~1.3.8"}}},
    },
}


class TestBuildGraph(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.repositories = [
            _repo("core"),
            _repo("widget"),
            _repo("pkg-a"),
            _repo("pkg-b"),
            _repo("broken"),
            _repo("missing"),
            _repo("old", archived=True),
        ]
        self.registry = dict(REGISTRY)
        self.manifest_requests = []
        self.registry_requests = []
        self.manifest_delays = {}

    async def _github_handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/orgs/SlimIO/repos":
            return httpx.Response(200, json=self.repositories)

        self.manifest_requests.append(request)
        repo_name = path.split("/")[3]
        await asyncio.sleep(self.manifest_delays.get(repo_name, 0))
        if repo_name == "broken":
            return httpx.Response(200, text="{ this is not json")
        if repo_name == "slow":
            raise httpx.ReadTimeout("timed out", request=request)
        if repo_name not in MANIFESTS:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, text=json.dumps(MANIFESTS[repo_name]))

    def _registry_handler(self, request: httpx.Request) -> httpx.Response:
        self.registry_requests.append(request.url.path)
        document = self.registry.get(request.url.path)
        if document is None:
            return httpx.Response(500)
        return httpx.Response(200, json=document)

    async def _build(self, **kwargs):
        github = GithubClient(
            token="secret",
            api_url=GITHUB_URL,
            user_agent="SlimIO",
            transport=httpx.MockTransport(self._github_handler),
        )
        registry = RegistryClient(
            registry_url=REGISTRY_URL,
            transport=httpx.MockTransport(self._registry_handler),
        )
        async with github, registry:
            return await build_graph(
                github,
                registry,
                org_name="SlimIO",
                npm_scope="@slimio",
                package_exceptions=kwargs.pop("package_exceptions", []),
                filter_org=True,
                max_concurrency=kwargs.pop("max_concurrency", 4),
            )

    async def test_builds_complete_graph(self):
        result = await self._build()
        graph = result.snapshot

        self.assertEqual(result.org_name, "SlimIO")
        self.assertEqual(
            set(graph),
            {"core", "widget", "pkg-a", "pkg-b", "broken", "missing", "leftpad", "express"},
        )
        self.assertEqual(graph["widget"]["dependOn"], {"core": "^2.0.0"})
        self.assertEqual(graph["core"]["uses"], {"widget": "^2.0.0"})
        self.assertEqual(graph["leftpad"]["uses"], {"core": "^1.0.0"})
        self.assertEqual(graph["express"]["uses"], {"core": "^4.17.0", "widget": "^4.18.0"})
        self.assertTrue(graph["express"]["hasDependencies"])
        self.assertFalse(graph["leftpad"]["hasDependencies"])

        # forward reference resolved through pkg-b's package name
        self.assertEqual(graph["pkg-a"]["dependOn"], {"pkg-b": "^3.0.0"})
        self.assertEqual(graph["pkg-b"]["uses"], {"pkg-a": "^3.0.0"})

        self.assertEqual(
            [(o.dependency_name, o.dependent_name) for o in result.unresolved_orphans],
            [("missing-lib", "pkg-a")],
        )

    async def test_failed_manifests_are_isolated(self):
        result = await self._build()
        graph = result.snapshot

        self.assertEqual(result.failed_repositories, ["broken", "missing"])
        for name in ("broken", "missing"):
            self.assertIsNone(graph[name]["currVersion"])
            self.assertEqual(graph[name]["extDeps"], {})
            self.assertEqual(graph[name]["dependOn"], {})
            self.assertEqual(graph[name]["uses"], {})
        self.assertEqual(graph["core"]["currVersion"], "2.0.0")

    async def test_timeout_only_fails_its_repository(self):
        self.repositories.append(_repo("slow"))

        result = await self._build()

        self.assertIn("slow", result.failed_repositories)
        self.assertIsNone(result.snapshot["slow"]["currVersion"])
        self.assertEqual(result.snapshot["widget"]["currVersion"], "1.4.0")

    async def test_manifest_requests_use_raw_media_type_and_token(self):
        await self._build()

        self.assertEqual(len(self.manifest_requests), 6)
        request = self.manifest_requests[0]
        self.assertEqual(request.headers["Accept"], "application/vnd.github.v3.raw")
        self.assertEqual(request.headers["Authorization"], "Bearer secret")
        self.assertEqual(request.headers["User-Agent"], "SlimIO")
        self.assertTrue(request.url.path.endswith("/contents/package.json"))

    async def test_registry_failure_defaults_has_dependencies(self):
        del self.registry["/express"]

        result = await self._build()

        self.assertFalse(result.snapshot["express"]["hasDependencies"])
        self.assertEqual(
            result.snapshot["express"]["uses"], {"core": "^4.17.0", "widget": "^4.18.0"}
        )

    async def test_each_external_package_is_queried_once(self):
        await self._build()
        self.assertEqual(sorted(self.registry_requests), ["/express", "/leftpad"])

    async def test_excepted_repository_is_not_fetched(self):
        result = await self._build(package_exceptions=["missing"])

        self.assertNotIn("missing", result.snapshot)
        self.assertEqual(result.failed_repositories, ["broken"])

    async def test_ids_are_unique(self):
        result = await self._build(max_concurrency=1)
        ids = [node["id"] for node in result.snapshot.values()]
        self.assertEqual(len(ids), len(set(ids)))

    async def test_rebuild_gives_same_graph_in_any_completion_order(self):
        names = [repo["name"] for repo in self.repositories if not repo["archived"]]

        self.manifest_delays = {name: 0.001 * index for index, name in enumerate(names)}
        first = await self._build()
        self.manifest_delays = {name: 0.001 * index for index, name in enumerate(reversed(names))}
        second = await self._build()

        def edges(graph):
            return {
                name: {key: node.get(key) for key in ("uses", "dependOn", "extDeps")}
                for name, node in graph.items()
            }

        self.assertEqual(set(first.snapshot), set(second.snapshot))
        self.assertEqual(edges(first.snapshot), edges(second.snapshot))
        self.assertEqual(first.failed_repositories, second.failed_repositories)
        self.assertEqual(
            {(o.dependency_name, o.dependent_name) for o in first.unresolved_orphans},
            {(o.dependency_name, o.dependent_name) for o in second.unresolved_orphans},
        )

    async def test_build_starts_from_a_fresh_tracing_context(self):
        TracingContext.set(run_id="previous-run", repo_name="stale")

        await self._build()

        context = TracingContext.get()
        self.assertNotEqual(context["run_id"], "previous-run")
        self.assertEqual(context["repo_name"], "")
        self.assertEqual(context["org_name"], "SlimIO")
        TracingContext.clear()

    async def test_listing_failure_is_fatal(self):
        def failing_handler(request):
            return httpx.Response(500)

        github = GithubClient(
            token="secret", api_url=GITHUB_URL, transport=httpx.MockTransport(failing_handler)
        )
        registry = RegistryClient(
            registry_url=REGISTRY_URL, transport=httpx.MockTransport(self._registry_handler)
        )
        async with github, registry:
            with self.assertRaises(RepositoryListingError):
                await build_graph(github, registry, org_name="SlimIO", npm_scope="@slimio")


if __name__ == "__main__":
    unittest.main()
