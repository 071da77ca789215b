import logging
from typing import Any, Dict, Optional


_LOGGER = logging.getLogger("iklankilat")


def log(level: int, trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    """Log an event with Application Insights custom dimensions.

    ``trace_id`` is the job id for video work and the user id for
    request-scoped events, so related lines can be filtered together.
    """
    dims: Dict[str, Any] = {"traceId": trace_id} if trace_id else {}
    dims.update({k: v for k, v in dimensions.items() if v is not None})
    _LOGGER.log(level, message, extra={"custom_dimensions": dims})


def info(trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.INFO, trace_id, message, **dimensions)


def warning(trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.WARNING, trace_id, message, **dimensions)


def error(trace_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.ERROR, trace_id, message, **dimensions)
