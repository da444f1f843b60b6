from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path


class ArtifactManager:
    """Creates and manages healing artifact files."""

    def __init__(self, root: str | Path = "artifacts") -> None:
        self.root = Path(root)
        self.screenshot_root = self.root / "screenshots"

    def _ensure_structure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.screenshot_root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def timestamp() -> str:
        return datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")

    def log_path(self, file_name: str) -> Path:
        self._ensure_structure()
        return self.root / file_name

    def audit_path(self) -> Path:
        return self.log_path("healed_elements.jsonl")

    def screenshot_path(self, label: str, timestamp: str | None = None) -> Path:
        self._ensure_structure()
        stamp = timestamp or self.timestamp()
        slug = re.sub(r"[^A-Za-z0-9_-]+", "_", label).strip("_")[:60] or "element"
        return self.screenshot_root / f"{stamp}_{slug}.png"
