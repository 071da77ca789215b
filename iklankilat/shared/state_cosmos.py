import os
from typing import Any, Dict, Optional

from iklankilat.shared.cosmos_client import CosmosDBClient, get_cosmos_client
from iklankilat.shared.logging_utils import info as log_info

from .state_common import append_event, apply_status, new_entry


JOB_RUNS_CONTAINER = "job_runs"


class CosmosJobStateStore:
    """Job state documents in Cosmos, partitioned by ``/id``.

    The container name can be overridden with COSMOS_DB_CONTAINER_JOB_RUNS.
    """

    def __init__(self, client: Optional[CosmosDBClient] = None):
        self._client = client or get_cosmos_client()

    def _load(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._client.get_item(JOB_RUNS_CONTAINER, job_id, partition_key=job_id)

    def set_status(
        self,
        job_id: str,
        status: str,
        summary: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        phase: str = "video",
    ) -> None:
        entry = self._load(job_id) or new_entry(job_id, phase)
        entry = apply_status(entry, phase=phase, status=status, summary=summary, user_id=user_id)
        self._client.upsert_item(JOB_RUNS_CONTAINER, entry)
        log_info(job_id, "cosmos:job_runs:upsert_status", phase=phase, status=status)

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._load(job_id)

    def add_event(
        self,
        job_id: str,
        *,
        action: str,
        message: Optional[str] = None,
        status: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        phase: str = "video",
    ) -> None:
        entry = self._load(job_id) or new_entry(job_id, phase, status or "in_progress")
        entry = append_event(entry, phase=phase, action=action, message=message, status=status, data=data)
        self._client.upsert_item(JOB_RUNS_CONTAINER, entry)
        log_info(job_id, "cosmos:job_runs:upsert_event", phase=phase, action=action)


def cosmos_configured() -> bool:
    has_account = os.getenv("COSMOS_DB_CONNECTION_STRING") or os.getenv("COSMOS_DB_ENDPOINT")
    return bool(has_account and os.getenv("COSMOS_DB_NAME"))
