from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import asdict
from datetime import UTC, datetime
from enum import Enum

from selfheal.config.schema import HealingSettings
from selfheal.core.metadata import HealAttempt
from selfheal.logging.artifacts import ArtifactManager

log = logging.getLogger("selfheal")


class LogCategory(str, Enum):
    ATTEMPT = "ATTEMPT"
    SANITIZED = "SANITIZED"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    CACHE_HIT = "CACHE HIT"
    CACHE_EVICT = "CACHE EVICT"
    SKIP = "SKIP"
    DIAG = "DIAG"
    ACTION = "ACTION"


_WARNING_CATEGORIES = {LogCategory.FAILURE, LogCategory.CACHE_EVICT}


class HealingLog:
    """Category-tagged diagnostic lines with consecutive-duplicate suppression.

    Lines always go to the ``selfheal`` stdlib logger. When ``settings.debug``
    is set they are also appended to a durable log file, and fuzzy heal
    attempts are written to a JSONL audit trail under the artifacts root.
    """

    def __init__(
        self,
        settings: HealingSettings | None = None,
        artifact_manager: ArtifactManager | None = None,
        history_size: int = 500,
    ) -> None:
        self.settings = settings or HealingSettings()
        self.artifact_manager = artifact_manager or ArtifactManager(self.settings.artifacts_root)
        self.history: deque[tuple[LogCategory, str]] = deque(maxlen=history_size)
        self._last_line = ""

    def log(self, category: LogCategory, message: str) -> bool:
        line = f"[HEALING][{category.value}] {message}"
        if line == self._last_line:
            return False
        self._last_line = line
        self.history.append((category, message))
        level = logging.WARNING if category in _WARNING_CATEGORIES else logging.INFO
        log.log(level, line)
        if self.settings.debug:
            self._append_durable(line)
        return True

    def messages(self, category: LogCategory | None = None) -> list[str]:
        return [message for item_category, message in self.history if category is None or item_category == category]

    def record_heal(self, attempt: HealAttempt) -> None:
        if not self.settings.debug:
            return
        try:
            with self.artifact_manager.audit_path().open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(asdict(attempt)) + "\n")
        except OSError as exc:
            log.error("Could not write healing audit record: %s", exc)

    def _append_durable(self, line: str) -> None:
        timestamp = datetime.now(UTC).strftime("%H:%M:%S.%f")[:-3]
        try:
            path = self.artifact_manager.log_path(self.settings.log_file)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(f"[{timestamp}] {line}\n")
        except OSError as exc:
            log.error("Could not write to healing log file: %s", exc)
