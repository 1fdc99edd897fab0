from __future__ import annotations

import logging
from typing import Any, Mapping

from exclog.telemetry.records import ExceptionRecord

logger = logging.getLogger(__name__)


class NullHandle:
    name = "off"

    def load(self) -> None:
        return None

    def send(self, record: ExceptionRecord) -> None:
        logger.debug("[exclog/off] discarding %s", type(record.error).__name__)

    def flush(self) -> None:
        return None


class NullBackend:
    name = "off"

    async def create(self, config: Mapping[str, Any]) -> NullHandle:
        return NullHandle()
