import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.eventlog.time.clock import Clock


class StructuredEventLogger:
    """
    JSON-lines logger for the event log service and its HTTP boundary.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, clock: Optional[Clock] = None):
        self._logger = logger or logging.getLogger("eventlog")
        self._clock = clock

    def emit(self, event_type: str, level: int = logging.INFO, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        now = self._clock.now() if self._clock else datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": now.isoformat(),
            "event_type": event_type,
        }
        payload.update(fields)
        self._logger.log(level, json.dumps(payload, default=str, ensure_ascii=True))

    def error(self, event_type: str, **fields: Any) -> None:
        self.emit(event_type, level=logging.ERROR, **fields)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
