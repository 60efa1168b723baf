from urllib.parse import quote

from aiohttp.test_utils import AioHTTPTestCase

from src.domain.exceptions import UpstreamFailureException
from src.infrastructure.platform_clients import GitHubActionsClient, GitLabPipelinesClient
from src.infrastructure.registry import InMemoryRepositoryRegistry
from src.presentation.routes import create_app


class _RecordingMixin:
    def __init__(self, runs_by_repo) -> None:
        super().__init__()
        self.runs_by_repo = runs_by_repo
        self.calls = 0

    async def fetch_recent(self, session, record, count):
        self.calls += 1
        runs = self.runs_by_repo.get(record.id, [])
        if isinstance(runs, Exception):
            raise runs
        return runs[:count]


class _RecordingGitHubClient(_RecordingMixin, GitHubActionsClient):
    pass


class _RecordingGitLabClient(_RecordingMixin, GitLabPipelinesClient):
    pass


class TestDashboardRoutes(AioHTTPTestCase):
    async def get_application(self):
        self.registry = InMemoryRepositoryRegistry()
        self.github = _RecordingGitHubClient({
            "acme/widgets": [
                {"id": 3, "status": "completed", "conclusion": "success",
                 "run_started_at": "2024-01-02T03:00:00Z", "updated_at": "2024-01-02T03:01:00Z"},
            ],
            "acme/broken": UpstreamFailureException("acme/broken", "500, message='Internal Server Error'"),
        })
        self.gitlab = _RecordingGitLabClient({})
        return create_app(
            registry=self.registry,
            clients={"github": self.github, "gitlab": self.gitlab},
        )

    async def _add(self, platform, owner, name, token="secret-token"):
        resp = await self.client.post(
            "/api/repos",
            json={"platform": platform, "owner": owner, "name": name, "token": token},
        )
        self.assertEqual(resp.status, 200)
        return await resp.json()

    async def test_add_and_list_never_expose_token(self) -> None:
        created = await self._add("github", "acme", "widgets")

        self.assertTrue(created["success"])
        self.assertEqual(created["repo"]["id"], "acme/widgets")
        self.assertEqual(created["repo"]["token"], "***")

        resp = await self.client.get("/api/repos")
        body = await resp.text()
        self.assertNotIn("secret-token", body)
        repos = await resp.json()
        self.assertEqual(repos, [{
            "id": "acme/widgets", "platform": "github", "owner": "acme", "name": "widgets", "token": "***",
        }])

    async def test_post_rejects_non_json_body(self) -> None:
        resp = await self.client.post("/api/repos", data="not json")

        self.assertEqual(resp.status, 400)
        self.assertIn("error", await resp.json())

    async def test_delete_encoded_id(self) -> None:
        await self._add("github", "acme", "widgets")

        resp = await self.client.delete(f"/api/repos/{quote('acme/widgets', safe='')}")

        self.assertEqual(resp.status, 200)
        self.assertEqual(await resp.json(), {"success": True})
        self.assertEqual(self.registry.list_repositories(), [])

    async def test_delete_unknown_id_still_succeeds(self) -> None:
        await self._add("github", "acme", "widgets")

        resp = await self.client.delete("/api/repos/nobody/nothing")

        self.assertEqual(await resp.json(), {"success": True})
        self.assertEqual(len(self.registry.list_repositories()), 1)

    async def test_detailed_status(self) -> None:
        await self._add("github", "acme", "widgets")

        resp = await self.client.get("/api/repos/acme/widgets/status")

        self.assertEqual(resp.status, 200)
        status = await resp.json()
        self.assertEqual(status["successRate"], 100)
        self.assertEqual(status["lastRun"]["durationSeconds"], 60)

    async def test_unknown_id_is_404_without_network_call(self) -> None:
        resp = await self.client.get("/api/repos/nobody/nothing/status")

        self.assertEqual(resp.status, 404)
        self.assertIn("error", await resp.json())
        self.assertEqual(self.github.calls + self.gitlab.calls, 0)

    async def test_upstream_failure_is_500_with_message(self) -> None:
        await self._add("github", "acme", "broken")

        resp = await self.client.get("/api/repos/acme/broken/status")

        self.assertEqual(resp.status, 500)
        self.assertIn("Internal Server Error", (await resp.json())["error"])

    async def test_unsupported_platform_is_empty_200(self) -> None:
        await self._add("bitbucket", "acme", "widgets")

        resp = await self.client.get("/api/repos/acme/widgets/status")

        self.assertEqual(resp.status, 200)
        self.assertEqual(await resp.json(), {})

    async def test_summary_embeds_failures(self) -> None:
        await self._add("github", "acme", "broken")
        await self._add("github", "acme", "widgets")

        resp = await self.client.get("/api/status")

        self.assertEqual(resp.status, 200)
        statuses = await resp.json()
        self.assertEqual([s["status"] for s in statuses], ["error", "success"])
        self.assertTrue(statuses[0]["error"])

    async def test_dashboard_page_is_served(self) -> None:
        resp = await self.client.get("/")

        self.assertEqual(resp.status, 200)
        self.assertIn("/api/status", await resp.text())

    async def test_post_accepts_non_string_fields(self) -> None:
        resp = await self.client.post(
            "/api/repos",
            json={"platform": "github", "owner": None, "name": 42, "token": "t"},
        )

        self.assertEqual(resp.status, 200)
        repo = (await resp.json())["repo"]
        self.assertEqual(repo["id"], "null/42")
        self.assertEqual(repo["owner"], "null")
        self.assertEqual(repo["name"], "42")

    async def test_post_with_missing_fields_still_registers(self) -> None:
        resp = await self.client.post("/api/repos", json={"platform": "gitlab", "name": "x"})

        self.assertEqual(resp.status, 200)
        self.assertEqual((await resp.json())["repo"]["id"], "undefined/x")
        self.assertEqual(len(self.registry.list_repositories()), 1)

    async def test_post_rejects_non_object_json(self) -> None:
        resp = await self.client.post("/api/repos", json=["github", "acme", "widgets"])

        self.assertEqual(resp.status, 400)
        self.assertEqual(self.registry.list_repositories(), [])

    async def test_post_rejects_undecodable_body(self) -> None:
        resp = await self.client.post(
            "/api/repos",
            data=b"\xff\xfe{not text",
            headers={"Content-Type": "application/json"},
        )

        self.assertEqual(resp.status, 400)
        self.assertIn("error", await resp.json())

    async def test_responses_allow_any_origin(self) -> None:
        resp = await self.client.get("/api/repos", headers={"Origin": "http://other.example"})

        self.assertEqual(resp.status, 200)
        self.assertEqual(resp.headers.get("Access-Control-Allow-Origin"), "*")

    async def test_error_responses_allow_any_origin(self) -> None:
        resp = await self.client.get("/api/repos/nobody/nothing/status", headers={"Origin": "http://other.example"})

        self.assertEqual(resp.status, 404)
        self.assertEqual(resp.headers.get("Access-Control-Allow-Origin"), "*")

    async def test_preflight_is_answered(self) -> None:
        resp = await self.client.options(
            "/api/repos",
            headers={
                "Origin": "http://other.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )

        self.assertEqual(resp.status, 204)
        self.assertEqual(resp.headers.get("Access-Control-Allow-Origin"), "*")
        self.assertIn("POST", resp.headers.get("Access-Control-Allow-Methods"))
        self.assertIn("DELETE", resp.headers.get("Access-Control-Allow-Methods"))
        self.assertEqual(resp.headers.get("Access-Control-Allow-Headers"), "content-type")
