"""
Filter settings stored in a JSON file.

Holds the operator-tunable knobs of the pipeline under dot-notation keys::

    safety.levels.high.max_risk_score     -> 0.4
    refusal.boundaries.user_can_override  -> true
    audit.capacity                        -> 1000
    audit.log_dir                         -> "logs/audit"

Generic ``get``/``set``/``section`` work on any key; the typed accessors
below validate the values the service actually reads, so a hand-edited
file with a bad value falls back instead of breaking the pipeline.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from .events import CONFIG_CHANGED, EventBus

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path("coachguard.json")


class Config:
    """
    Usage::

        cfg = Config(bus, "coachguard.json")
        cfg.set("safety.levels.high.max_risk_score", 0.35)
        cfg.level_ceiling("high")          # 0.35
        cfg.rule_override("boundaries")    # None -> engine default
    """

    def __init__(self, event_bus: EventBus | None = None, path: Path | str = _DEFAULT_PATH):
        self._bus = event_bus
        self._path = Path(path)
        self._data: dict[str, Any] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    # ── Generic access ───────────────────────────────────────

    def _walk(self, parts: list[str], create: bool = False) -> Optional[dict[str, Any]]:
        """Return the dict at *parts*, or None if some step is not a dict."""
        node = self._data
        for p in parts:
            child = node.get(p)
            if not isinstance(child, dict):
                if not create:
                    return None
                child = node[p] = {}
            node = child
        return node

    def get(self, key: str, default: Any = None) -> Any:
        *parents, leaf = key.split(".")
        node = self._walk(parents)
        if node is None:
            return default
        return node.get(leaf, default)

    def set(self, key: str, value: Any, *, save: bool = True) -> None:
        *parents, leaf = key.split(".")
        self._walk(parents, create=True)[leaf] = value
        if save:
            self.save()
        if self._bus is not None:
            self._bus.publish(CONFIG_CHANGED, {"key": key, "value": value})

    def section(self, prefix: str) -> dict[str, Any]:
        """Shallow copy of everything under *prefix*."""
        node = self._walk(prefix.split("."))
        return dict(node) if node is not None else {}

    # ── Typed accessors ──────────────────────────────────────

    def level_ceiling(self, level: str) -> Optional[float]:
        """``max_risk_score`` override for *level*, clamped to [0, 1]."""
        key = f"safety.levels.{level}.max_risk_score"
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return max(0.0, min(1.0, float(raw)))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric %s: %r", key, raw)
            return None

    def rule_override(self, rule: str) -> Optional[bool]:
        key = f"refusal.{rule}.user_can_override"
        raw = self.get(key)
        if raw is None or isinstance(raw, bool):
            return raw
        logger.warning("Ignoring non-boolean %s: %r", key, raw)
        return None

    def audit_capacity(self, default: int) -> int:
        raw = self.get("audit.capacity", default)
        try:
            capacity = int(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer audit.capacity: %r", raw)
            return default
        return capacity if capacity > 0 else default

    def audit_log_dir(self) -> Optional[Path]:
        raw = self.get("audit.log_dir")
        return Path(raw) if raw else None

    # ── Persistence ──────────────────────────────────────────

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Unreadable config %s, starting empty: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Config %s is not a JSON object, starting empty", self._path)
            return {}
        return data

    def save(self) -> bool:
        try:
            self._path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.error("Could not write config %s: %s", self._path, e)
            return False
        return True
