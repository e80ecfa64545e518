"""
Audit trail for filtering decisions.

Every ``filter_prompt`` call produces exactly one ``AuditLogEntry``.
Entries go to:

1. An in-memory ring buffer (default 1000 entries, oldest evicted
   first) that backs ``get_audit_logs``.
2. Optionally a JSON-Lines file (``<log_dir>/audit_log.jsonl``) for
   post-hoc compliance review.
3. The ``EventBus`` as an ``audit_entry`` event so an audit viewer can
   display it live.

Appends are serialised with a lock, so concurrent writers never lose
or interleave entries.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from ..events import AUDIT_ENTRY
from ..models import (
    MAX_AUDIT_PROMPT_CHARS,
    AuditAction,
    AuditLogEntry,
    EscalationLevel,
    FilteringConfig,
    RefusalResult,
    UserMemoryContext,
)

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
ANONYMOUS_USER = "anonymous"
UNKNOWN_SESSION = "unknown"


# ------------------------------------------------------------------
# Entry builder
# ------------------------------------------------------------------

def _make_audit_id() -> str:
    return f"audit_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def decide_action(
    refusal: RefusalResult,
    allowed: bool,
    modified: bool,
) -> AuditAction:
    if refusal.should_refuse:
        if refusal.escalation_level in (EscalationLevel.ADMIN, EscalationLevel.EMERGENCY):
            return AuditAction.ESCALATED
        return AuditAction.REFUSED
    if not allowed:
        return AuditAction.BLOCKED
    if modified:
        return AuditAction.MODIFIED
    return AuditAction.ALLOWED


def build_audit_entry(
    prompt: str,
    config: FilteringConfig,
    risk_score: float,
    refusal: RefusalResult,
    action: AuditAction,
    user_id: str = ANONYMOUS_USER,
    memory: Optional[UserMemoryContext] = None,
) -> AuditLogEntry:
    """Build the immutable entry for one filtering decision."""
    reasoning = f"Risk score: {risk_score:.2f}, Refusal: {refusal.should_refuse}"
    if refusal.should_refuse and refusal.rule:
        reasoning += f" (rule={refusal.rule})"

    memory_snapshot: Optional[Dict[str, Any]] = None
    if memory is not None:
        memory_snapshot = {
            "personality_type": memory.personality_type,
            "trust_level": memory.trust_level,
        }

    emotional_snapshot: Optional[Dict[str, Any]] = None
    if config.emotional_state is not None:
        emotional_snapshot = {
            "primary": config.emotional_state.primary,
            "intensity": config.emotional_state.intensity,
        }

    session = config.conversation_context
    return AuditLogEntry(
        id=_make_audit_id(),
        timestamp=time.time(),
        user_id=user_id,
        session_id=session.session_id if session is not None else UNKNOWN_SESSION,
        prompt=prompt[:MAX_AUDIT_PROMPT_CHARS],
        risk_score=risk_score,
        action=action,
        reasoning=reasoning,
        refusal_reason=refusal.refusal_reason,
        escalation_level=refusal.escalation_level,
        memory_context=memory_snapshot,
        emotional_state=emotional_snapshot,
        ai_provider=config.ai_provider,
        safety_level=config.safety_level,
    )


# ------------------------------------------------------------------
# Logger
# ------------------------------------------------------------------

class AuditLogger:
    """
    Append-only, size-bounded audit log.

    ``log_dir=None`` keeps the log purely in memory.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        log_dir: Optional[Path | str] = None,
        event_bus: Optional[Any] = None,
    ):
        self._bus = event_bus
        self._capacity = max(1, int(capacity))
        self._entries: Deque[AuditLogEntry] = deque(maxlen=self._capacity)
        self._lock = threading.Lock()
        self._file: Optional[Path] = None
        if log_dir is not None:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)
            self._file = log_path / "audit_log.jsonl"

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(self, entry: AuditLogEntry) -> str:
        """Append one entry, mirror it to disk and the bus, return its id."""
        with self._lock:
            self._entries.append(entry)
            if self._file is not None:
                try:
                    with self._file.open("a", encoding="utf-8") as f:
                        f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                except OSError as e:
                    logger.error("Could not write audit entry %s: %s", entry.id, e)

        logger.info("Audit log created: %s (%s)", entry.id, entry.action.value)

        if self._bus is not None:
            summary = f"[{entry.safety_level.value.upper()}] {entry.action.value.upper()} - {entry.reasoning}"
            self._bus.publish(AUDIT_ENTRY, {
                "category": entry.action.value,
                "text": summary,
                "detail": entry.to_dict(),
            })
        return entry.id

    def get_audit_logs(self, user_id: str, limit: int = 100) -> List[AuditLogEntry]:
        """Most recent entries for *user_id*, newest first, at most *limit*."""
        if limit <= 0:
            return []
        result: List[AuditLogEntry] = []
        with self._lock:
            for entry in reversed(self._entries):
                if entry.user_id == user_id:
                    result.append(entry)
                    if len(result) >= limit:
                        break
        return result

    def read_recent(self, n: int = 50) -> List[Dict[str, Any]]:
        """Read the last *n* entries from the JSONL file."""
        if self._file is None or not self._file.exists():
            return []
        try:
            lines = self._file.read_text(encoding="utf-8").strip().split("\n")
            return [json.loads(line) for line in lines[-n:] if line.strip()]
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read audit file %s: %s", self._file, e)
            return []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            if self._file is not None:
                try:
                    self._file.write_text("", encoding="utf-8")
                except OSError as e:
                    logger.error("Could not clear audit file %s: %s", self._file, e)
