"""Logging setup for the offline tools (imports, audio backfill, email dispatch).

Imports and audio jobs run for minutes against the database; with
``LOG_FORMAT=json`` every line is a JSON object carrying the stage fields.
"""

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Optional, Union

# Anything on a record beyond these came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "stripe")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: Union[str, int] = logging.INFO, json_format: Optional[bool] = None) -> None:
    """Replace the root handlers with a single stdout handler.

    Args:
        level: Root logging level
        json_format: JSON lines instead of text; defaults to ``LOG_FORMAT=json``
    """
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter()
        if json_format
        else logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%H:%M:%S")
    )
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def stage_logger(stage_name: str, **context):
    """Time one job stage and log its start, end or failure with ``context`` attached.

    Yields:
        Logger named ``faloclaro.<stage_name>``

    Example:
        >>> with stage_logger("import_clusters", files=14) as log:
        ...     log.info("Kafe e restaurantes")
    """
    log = logging.getLogger(f"faloclaro.{stage_name}")
    fields = {"stage": stage_name, **context}
    started = time.perf_counter()
    log.info(f"▶ {stage_name}", extra={**fields, "status": "started"})

    try:
        yield log
    except Exception as e:
        elapsed = round((time.perf_counter() - started) * 1000, 1)
        log.exception(
            f"✗ {stage_name} failed after {elapsed}ms",
            extra={**fields, "status": "failed", "duration_ms": elapsed, "error": str(e)[:200]},
        )
        raise

    elapsed = round((time.perf_counter() - started) * 1000, 1)
    log.info(f"✓ {stage_name} done in {elapsed}ms", extra={**fields, "status": "completed", "duration_ms": elapsed})
