import logging
from typing import List, Optional

from src.domain.models import RepositoryRecord

logger = logging.getLogger(__name__)


class InMemoryRepositoryRegistry:
    """
    Process-local store of tracked repositories.
    Records keep insertion order; duplicate ids are allowed and lookups resolve to the first match.
    """

    def __init__(self):
        self._records: List[RepositoryRecord] = []

    def list_repositories(self) -> List[RepositoryRecord]:
        """Returns every record with its token redacted."""
        return [record.redacted() for record in self._records]

    def add(self, platform: str, owner: str, name: str, token: str) -> RepositoryRecord:
        """
        Appends a new record without deduplication or validation.

        Returns:
            RepositoryRecord: The created record, token redacted.
        """
        record = RepositoryRecord.create(platform=platform, owner=owner, name=name, token=token)
        self._records.append(record)
        logger.info(f"Registered {record.platform} repository '{record.id}'.")
        return record.redacted()

    def remove(self, repository_id: str) -> bool:
        """Removes every record with the given id. Always reports success."""
        before = len(self._records)
        self._records = [r for r in self._records if r.id != repository_id]
        removed = before - len(self._records)
        if removed:
            logger.info(f"Removed {removed} record(s) for '{repository_id}'.")
        return True

    def get(self, repository_id: str) -> Optional[RepositoryRecord]:
        return next((r for r in self._records if r.id == repository_id), None)

    def records(self) -> List[RepositoryRecord]:
        # Snapshot so a concurrent add/remove does not alter an in-flight fan-out.
        return list(self._records)
