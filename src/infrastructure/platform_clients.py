import aiohttp
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from src.domain.exceptions import UpstreamFailureException
from src.domain.models import GITHUB, GITLAB, RepositoryRecord, RunSummary
from src.infrastructure.acl import GitHubTranslator, GitLabTranslator

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITLAB_API_URL = "https://gitlab.com/api/v4"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "ci-status-dashboard"

# Anything raised while talking to the platform or reading its body.
UPSTREAM_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
)


class PlatformClient(ABC):
    """
    Common contract for the supported CI platforms.
    Subclasses describe how to address the runs endpoint and how to read its payload;
    fetching, error wrapping and normalization are shared.
    """

    platform: str = ""
    translator: type

    def __init__(self, api_url: str):
        self.api_url = api_url.rstrip("/")

    @abstractmethod
    def _request_for(self, record: RepositoryRecord) -> Tuple[str, Dict[str, str]]:
        raise NotImplementedError

    @abstractmethod
    def _extract_runs(self, payload: Any) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def succeeded(self, raw_run: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def extract_status(self, raw_run: Dict[str, Any]) -> Optional[str]:
        return self.translator.status_of(raw_run)

    def to_run_summary(self, raw_run: Dict[str, Any]) -> RunSummary:
        return self.translator.to_domain(raw_run)

    async def fetch_recent(
        self,
        session: aiohttp.ClientSession,
        record: RepositoryRecord,
        count: int,
    ) -> List[Dict[str, Any]]:
        """
        Fetches the `count` most recent runs, newest first, exactly as the platform orders them.

        Raises:
            UpstreamFailureException: On transport errors, non-2xx responses or malformed bodies.
        """
        url, headers = self._request_for(record)
        logger.debug(f"Fetching {count} {self.platform} run(s) for '{record.id}'.")
        try:
            async with session.get(url, headers=headers, params={"per_page": count}) as response:
                response.raise_for_status()
                payload = await response.json()
            return self._extract_runs(payload)
        except UPSTREAM_ERRORS as e:
            raise UpstreamFailureException(record.id, str(e) or type(e).__name__) from e

    async def fetch_latest(
        self,
        session: aiohttp.ClientSession,
        record: RepositoryRecord,
    ) -> Optional[Dict[str, Any]]:
        runs = await self.fetch_recent(session, record, 1)
        return runs[0] if runs else None


class GitHubActionsClient(PlatformClient):
    """Reads workflow runs from the GitHub Actions REST API."""

    platform = GITHUB
    translator = GitHubTranslator

    def __init__(self, api_url: str = GITHUB_API_URL):
        super().__init__(api_url)

    def _request_for(self, record: RepositoryRecord) -> Tuple[str, Dict[str, str]]:
        url = f"{self.api_url}/repos/{record.owner}/{record.name}/actions/runs"
        headers = {
            "Authorization": f"Bearer {record.token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        return url, headers

    def _extract_runs(self, payload: Any) -> List[Dict[str, Any]]:
        return payload.get('workflow_runs') or []

    def succeeded(self, raw_run: Dict[str, Any]) -> bool:
        return raw_run.get('conclusion') == "success"


class GitLabPipelinesClient(PlatformClient):
    """Reads pipelines from the GitLab v4 REST API, addressing projects by URL-encoded path."""

    platform = GITLAB
    translator = GitLabTranslator

    def __init__(self, api_url: str = GITLAB_API_URL):
        super().__init__(api_url)

    def _request_for(self, record: RepositoryRecord) -> Tuple[str, Dict[str, str]]:
        project_id = quote(f"{record.owner}/{record.name}", safe="")
        url = f"{self.api_url}/projects/{project_id}/pipelines"
        return url, {"PRIVATE-TOKEN": record.token}

    def _extract_runs(self, payload: Any) -> List[Dict[str, Any]]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TypeError(f"expected a list of pipelines, got {type(payload).__name__}")
        return payload

    def succeeded(self, raw_run: Dict[str, Any]) -> bool:
        return raw_run.get('status') == "success"


def build_platform_clients(
    github_api_url: str = GITHUB_API_URL,
    gitlab_api_url: str = GITLAB_API_URL,
) -> Dict[str, PlatformClient]:
    """Maps each supported platform name to its client."""
    clients = [GitHubActionsClient(github_api_url), GitLabPipelinesClient(gitlab_api_url)]
    return {client.platform: client for client in clients}
