import os
from functools import lru_cache
from typing import Union

from iklankilat.specs.common.errors import ConfigurationError

from .state_cosmos import CosmosJobStateStore, cosmos_configured
from .state_file import FileJobStateStore


JobStateStore = Union[FileJobStateStore, CosmosJobStateStore]


def _select_backend() -> JobStateStore:
    backend = os.getenv("RUN_STATE_BACKEND", "auto").lower()
    if backend == "file":
        return FileJobStateStore()
    if backend == "cosmos":
        return CosmosJobStateStore()
    if backend != "auto":
        raise ConfigurationError(f"Unknown RUN_STATE_BACKEND '{backend}'")
    # auto-detect cosmos if config present
    if cosmos_configured():
        return CosmosJobStateStore()
    return FileJobStateStore()


@lru_cache(maxsize=1)
def get_job_store() -> JobStateStore:
    return _select_backend()
