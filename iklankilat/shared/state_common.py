from datetime import datetime, timezone
from typing import Any, Dict, Optional


TERMINAL_STATUSES = ("completed", "failed")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_entry(job_id: str, phase: str, status: str = "pending") -> Dict[str, Any]:
    return {
        "id": job_id,
        "jobId": job_id,
        "currentPhase": phase,
        "status": status,
        "isComplete": status in TERMINAL_STATUSES,
        "lastUpdateUtc": utc_now(),
        "events": [],
    }


def apply_status(
    entry: Dict[str, Any],
    *,
    phase: str,
    status: str,
    summary: Optional[Dict[str, Any]],
    user_id: Optional[str],
) -> Dict[str, Any]:
    entry.update(
        {
            "currentPhase": phase,
            "status": status,
            "isComplete": status in TERMINAL_STATUSES,
            "lastUpdateUtc": utc_now(),
            "userId": user_id or entry.get("userId"),
        }
    )
    if summary is not None:
        entry["summary"] = summary
    return entry


def append_event(
    entry: Dict[str, Any],
    *,
    phase: str,
    action: str,
    message: Optional[str],
    status: Optional[str],
    data: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    ev: Dict[str, Any] = {"ts": utc_now(), "phase": phase, "action": action}
    if message:
        ev["message"] = message
        entry["statusMessage"] = message
    if status:
        ev["status"] = status
    if data is not None:
        ev["data"] = data
    entry.setdefault("events", []).append(ev)
    entry["lastUpdateUtc"] = ev["ts"]
    return entry
