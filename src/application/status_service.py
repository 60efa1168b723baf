import asyncio
import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional
import aiohttp

from src.domain.exceptions import RepositoryNotFoundException, UpstreamFailureException
from src.domain.models import AggregateStatus, RepositoryRecord, RepositoryStatusSummary
from src.infrastructure.platform_clients import UPSTREAM_ERRORS, PlatformClient
from src.infrastructure.registry import InMemoryRepositoryRegistry

logger = logging.getLogger(__name__)

# Runs sampled for the success rate of the detailed view
DETAIL_SAMPLE_SIZE = 10
# Runs returned to the client in the detailed view
RECENT_RUNS_LIMIT = 5
UNKNOWN_STATUS = "unknown"
ERROR_STATUS = "error"


def success_rate(successes: int, total: int) -> int:
    """Percentage of successful runs, rounded half up. 0 for an empty sample."""
    if total == 0:
        return 0
    return math.floor(successes * 100 / total + 0.5)


class StatusService:
    """
    Service responsible for translating platform run histories into dashboard statuses,
    both for one repository in detail and for every registered repository at once.

    Each call opens its own HTTP session; nothing is cached between calls.
    """

    def __init__(
            self,
            registry: InMemoryRepositoryRegistry,
            clients: Mapping[str, PlatformClient],
            session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ):
        self.registry = registry
        self.clients = clients
        self.session_factory = session_factory

    async def get_status(self, repository_id: str) -> Dict[str, Any]:
        """
        Builds the detailed status of one repository.

        Returns:
            Dict[str, Any]: The serialized AggregateStatus, or an empty dict for an unsupported platform.

        Raises:
            RepositoryNotFoundException: If no record has this id.
            UpstreamFailureException: If the platform could not be queried.
        """
        record = self.registry.get(repository_id)
        if record is None:
            raise RepositoryNotFoundException(repository_id)

        client = self.clients.get(record.platform)
        if client is None:
            logger.debug(f"No client for platform '{record.platform}' of '{record.id}'.")
            return {}

        async with self.session_factory() as session:
            raw_runs = await client.fetch_recent(session, record, DETAIL_SAMPLE_SIZE)

        try:
            status = self._aggregate(client, raw_runs)
        except UPSTREAM_ERRORS as e:
            raise UpstreamFailureException(record.id, str(e) or type(e).__name__) from e
        return status.model_dump(by_alias=True)

    @staticmethod
    def _aggregate(client: PlatformClient, raw_runs: List[Dict[str, Any]]) -> AggregateStatus:
        successes = sum(1 for run in raw_runs if client.succeeded(run))
        return AggregateStatus(
            platform=client.platform,
            last_run=client.to_run_summary(raw_runs[0]) if raw_runs else None,
            success_rate=success_rate(successes, len(raw_runs)),
            runs=[client.to_run_summary(run) for run in raw_runs[:RECENT_RUNS_LIMIT]],
        )

    async def get_all_statuses(self) -> List[Dict[str, Any]]:
        """
        Fetches the latest run of every registered repository concurrently.

        All requests are awaited to completion; a failure only affects its own entry,
        which is reported with status "error" and the failure message.
        Entries follow the registry order.
        """
        records = self.registry.records()
        if not records:
            return []

        async with self.session_factory() as session:
            tasks = [self._latest_summary(session, record) for record in records]
            results = await asyncio.gather(*tasks, return_exceptions=True)

        statuses: List[Dict[str, Any]] = []
        for record, result in zip(records, results):
            if isinstance(result, BaseException):
                logger.warning(f"Status fetch failed for '{record.id}': {result}")
                statuses.append(self._error_summary(record, result))
            else:
                statuses.append(result)
        return statuses

    async def _latest_summary(self, session: aiohttp.ClientSession, record: RepositoryRecord) -> Dict[str, Any]:
        client = self.clients.get(record.platform)
        if client is None:
            return {}

        latest = await client.fetch_latest(session, record)
        status: Optional[str] = client.extract_status(latest) if latest else None
        summary = RepositoryStatusSummary(
            id=record.id,
            platform=record.platform,
            owner=record.owner,
            name=record.name,
            status=status or UNKNOWN_STATUS,
            timestamp=latest.get('updated_at') if latest else None,
        )
        return summary.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def _error_summary(record: RepositoryRecord, error: BaseException) -> Dict[str, Any]:
        summary = RepositoryStatusSummary(
            id=record.id,
            platform=record.platform,
            owner=record.owner,
            name=record.name,
            status=ERROR_STATUS,
            error=str(error) or type(error).__name__,
        )
        return summary.model_dump(by_alias=True, exclude_none=True)
