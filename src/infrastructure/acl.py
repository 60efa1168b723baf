import math
from datetime import datetime
from typing import Any, Dict, Optional

from src.domain.models import RunSummary


def _parse_timestamp(raw_date: Optional[str]) -> Optional[datetime]:
    if not raw_date:
        return None
    return datetime.fromisoformat(raw_date.replace("Z", "+00:00"))


def duration_between(started: Optional[str], updated: Optional[str]) -> Optional[int]:
    """
    Whole seconds between two upstream ISO 8601 timestamps, floored.
    No clamping: runs still in progress can yield negative values.
    Returns None if either timestamp is missing.
    """
    start_dt = _parse_timestamp(started)
    end_dt = _parse_timestamp(updated)
    if start_dt is None or end_dt is None:
        return None
    return math.floor((end_dt - start_dt).total_seconds())


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub Actions workflow runs into RunSummary instances.
    """

    @staticmethod
    def status_of(raw_run: Dict[str, Any]) -> Optional[str]:
        # conclusion is only set once a run finishes
        return raw_run.get('conclusion') or raw_run.get('status')

    @staticmethod
    def to_domain(raw_run: Dict[str, Any]) -> RunSummary:
        """
        Transforms a raw entry of `workflow_runs` into a RunSummary.

        Args:
            raw_run (Dict[str, Any]): One workflow run from the GitHub REST API.

        Returns:
            RunSummary: The normalized run.
        """
        return RunSummary(
            id=raw_run.get('id'),
            status=GitHubTranslator.status_of(raw_run),
            duration_seconds=duration_between(raw_run.get('run_started_at'), raw_run.get('updated_at')),
            timestamp=raw_run.get('updated_at'),
            branch=raw_run.get('head_branch'),
        )


class GitLabTranslator:
    """
    Anti-corruption layer that translates raw GitLab pipelines into RunSummary instances.
    """

    @staticmethod
    def status_of(raw_pipeline: Dict[str, Any]) -> Optional[str]:
        return raw_pipeline.get('status')

    @staticmethod
    def to_domain(raw_pipeline: Dict[str, Any]) -> RunSummary:
        return RunSummary(
            id=raw_pipeline.get('id'),
            status=GitLabTranslator.status_of(raw_pipeline),
            duration_seconds=duration_between(raw_pipeline.get('created_at'), raw_pipeline.get('updated_at')),
            timestamp=raw_pipeline.get('updated_at'),
            branch=raw_pipeline.get('ref'),
        )
