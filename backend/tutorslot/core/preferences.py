# backend/tutorslot/core/preferences.py
"""
Per-user booking preferences.

An explicit key-value object handed to the orchestrator. It is loaded when a
user session starts and written back only when `persist()` is called, so
nothing lives in ambient global state.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .config import settings

logger = logging.getLogger(__name__)

DURATION_KEY = "default_duration_minutes"
HORIZON_KEY = "horizon_days"
CURRENCY_KEY = "currency"
SLOT_LIMIT_KEY = "slot_limit"


class BookingPreferences:
    """String-keyed configuration with typed accessors for the booking keys."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None, path: Optional[Path] = None):
        self._values: Dict[str, Any] = dict(values or {})
        self.path = path
        self.dirty = False

    @classmethod
    def load(cls, path: Path) -> "BookingPreferences":
        """Read preferences from a JSON file; a missing file yields defaults."""
        path = Path(path)
        if not path.exists():
            return cls(path=path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning(f"Ignoring unreadable preferences file {path}: {exc}")
            return cls(path=path)
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring preferences file {path}: expected a JSON object")
            return cls(path=path)
        return cls(raw, path=path)

    def persist(self, path: Optional[Path] = None) -> None:
        """Write the current values back to disk and clear the dirty flag."""
        target = Path(path) if path is not None else self.path
        if target is None:
            raise ValueError("No path to persist preferences to")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(self._values, indent=2, sort_keys=True), encoding="utf-8")
        self.path = target
        self.dirty = False

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if key in self._values and self._values[key] == value:
            return
        self._values[key] = value
        self.dirty = True

    def remove(self, key: str) -> None:
        if key in self._values:
            del self._values[key]
            self.dirty = True

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    @property
    def default_duration_minutes(self) -> int:
        return int(self.get(DURATION_KEY, settings.default_duration_minutes))

    @property
    def horizon_days(self) -> int:
        return int(self.get(HORIZON_KEY, settings.default_horizon_days))

    @property
    def currency(self) -> str:
        return str(self.get(CURRENCY_KEY, settings.default_currency)).lower()

    @property
    def slot_limit(self) -> Optional[int]:
        value = self.get(SLOT_LIMIT_KEY)
        return int(value) if value is not None else None
