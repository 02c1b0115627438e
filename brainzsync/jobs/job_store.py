"""
Persistence for job history.
Stores compact JSON records in the user data directory so recent runs can be
inspected after the process exits. Only non-sensitive fields are persisted.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from platformdirs import user_data_dir

from ..logging_utils import redact
from .job_model import JobOutcome

logger = logging.getLogger(__name__)

APP_NAME = "ListenBrainzPlaylistSync"


class JobStore:
    """Load/save job history to disk."""

    def __init__(self, app_name: str = APP_NAME, max_items: int = 50, history_path: Optional[Path] = None):
        self.app_name = app_name
        self.max_items = max_items
        self.history_path = Path(history_path) if history_path else self._resolve_path()

    def _resolve_path(self) -> Path:
        base = Path(user_data_dir(self.app_name, self.app_name))
        try:
            base.mkdir(parents=True, exist_ok=True)
        except OSError:
            base = Path.cwd()
        return base / "jobs_history.json"

    def load_history(self) -> List[Dict[str, Any]]:
        """Load the most recent job records."""
        if not self.history_path.exists():
            return []
        try:
            with open(self.history_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable job history {self.history_path}: {e}")
            return []
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)][-self.max_items :]

    def append(self, outcomes: Sequence[JobOutcome]) -> None:
        """Add outcomes to the stored history, keeping up to max_items."""
        records = self.load_history()
        for outcome in outcomes:
            record = outcome.to_dict()
            record["errors"] = [redact(e) for e in record.get("errors", [])]
            records.append(record)
        self.save_history(records)

    def save_history(self, records: List[Dict[str, Any]]) -> None:
        """Persist up to max_items records."""
        try:
            with open(self.history_path, "w", encoding="utf-8") as f:
                json.dump(records[-self.max_items :], f, ensure_ascii=True, indent=2)
        except (OSError, TypeError, ValueError) as e:
            # Persistence failures never abort a sync run
            logger.warning(f"Failed to save job history to {self.history_path}: {e}")
