from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Union

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: Union[int, str, None] = None) -> None:
    """Root logging setup used by the command-line entry point."""

    if isinstance(level, str):
        level = level.strip().upper() or "INFO"
    logging.basicConfig(level=level or logging.INFO, format=_FORMAT)


def _safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log one event as a single-line JSON object; non-serializable values are stringified."""

    if not logger.isEnabledFor(level):
        return
    payload: Dict[str, Any] = {"event": event, **fields}
    try:
        msg = json.dumps(payload, ensure_ascii=True, sort_keys=True, default=str)
    except (TypeError, ValueError):
        msg = json.dumps({k: _safe(v) for k, v in payload.items()}, ensure_ascii=True, sort_keys=True)
    logger.log(level, msg)


def parse_event(message: str) -> Optional[Dict[str, Any]]:
    """Inverse of log_event for a captured log message; None when it is not an event line."""

    try:
        data = json.loads(message)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) and "event" in data else None
