import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .state_common import append_event, apply_status, new_entry


# Temp-based default so local runs don't trip the Functions file watcher.
_DEFAULT_STATE_BASE = Path(tempfile.gettempdir()) / "iklankilat-runtime"


class FileJobStateStore:
    """JSON-file job state for local development and tests."""

    def __init__(self, state_dir: Optional[Path] = None):
        base = state_dir or Path(os.getenv("RUNTIME_STATE_DIR", str(_DEFAULT_STATE_BASE)))
        self._state_file = Path(base) / "jobs.json"
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, dict]:
        if not self._state_file.exists():
            return {}
        try:
            return json.loads(self._state_file.read_text())
        except json.JSONDecodeError:
            return {}

    def _write_all(self, data: Dict[str, dict]) -> None:
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        self._state_file.write_text(json.dumps(data))

    def set_status(
        self,
        job_id: str,
        status: str,
        summary: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        phase: str = "video",
    ) -> None:
        with self._lock:
            data = self._read_all()
            entry = data.get(job_id) or new_entry(job_id, phase)
            data[job_id] = apply_status(entry, phase=phase, status=status, summary=summary, user_id=user_id)
            self._write_all(data)

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._read_all().get(job_id)

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
        with self._lock:
            store = self._read_all()
            entry = store.get(job_id) or new_entry(job_id, phase, status or "in_progress")
            store[job_id] = append_event(
                entry, phase=phase, action=action, message=message, status=status, data=data
            )
            self._write_all(store)
