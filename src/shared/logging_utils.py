import logging
from typing import Any, Dict, Optional


_LOGGER = logging.getLogger("candidateform")


def log(level: int, correlation_id: Optional[str], message: str, **dimensions: Any) -> None:
    dims: Dict[str, Any] = {"correlationId": correlation_id} if correlation_id else {}
    dims.update(dimensions)
    _LOGGER.log(level, message, extra={"custom_dimensions": dims})


def info(correlation_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.INFO, correlation_id, message, **dimensions)


def warning(correlation_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.WARNING, correlation_id, message, **dimensions)


def error(correlation_id: Optional[str], message: str, **dimensions: Any) -> None:
    log(logging.ERROR, correlation_id, message, **dimensions)
