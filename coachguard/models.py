"""
Data structures shared by every stage of the prompt filter.

Enumerated tags are ``str`` enums so they serialise to their plain
values in audit lines and event payloads.  Timestamps are epoch
seconds (``time.time()``).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

MAX_RECENT_INTERACTIONS = 10
MAX_AUDIT_PROMPT_CHARS = 500


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ------------------------------------------------------------------
# Tags
# ------------------------------------------------------------------

class SafetyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    MAXIMUM = "maximum"


class RefusalReason(str, Enum):
    SAFETY = "safety"
    ETHICS = "ethics"
    BOUNDARIES = "boundaries"
    MANIPULATION = "manipulation"
    HARMFUL = "harmful"
    INAPPROPRIATE = "inappropriate"


class EscalationLevel(str, Enum):
    NONE = "none"
    USER = "user"            # tell the user, nothing more
    ADMIN = "admin"          # queue for a human reviewer
    EMERGENCY = "emergency"  # page someone now


class AuditAction(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"      # over the safety-level ceiling, no refusal rule fired
    MODIFIED = "modified"    # sanitizer changed the text
    REFUSED = "refused"
    ESCALATED = "escalated"  # refused and handed to admin/emergency


# ------------------------------------------------------------------
# User-side state
# ------------------------------------------------------------------

@dataclass
class EmotionalState:
    primary: str = "neutral"       # happy, sad, anxious, overwhelmed, ...
    intensity: float = 0.5         # 0-1
    stability: float = 0.5         # 0-1
    triggers: List[str] = field(default_factory=list)
    coping_strategies: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.intensity = _clamp(float(self.intensity))
        self.stability = _clamp(float(self.stability))


@dataclass
class ConversationMessage:
    role: str                      # "user" | "ai" | "system"
    content: str
    timestamp: float = field(default_factory=time.time)
    emotional_tone: Optional[str] = None


@dataclass
class ConversationContext:
    """
    One chat session.  ``conversation_depth`` only ever grows; use
    ``add_message`` rather than appending to the history directly.
    """
    session_id: str
    message_history: List[ConversationMessage] = field(default_factory=list)
    current_topic: str = ""
    conversation_depth: int = 0
    user_engagement: float = 0.5   # 0-1

    def __post_init__(self):
        self.user_engagement = _clamp(float(self.user_engagement))
        self.conversation_depth = max(0, int(self.conversation_depth))

    def add_message(self, message: ConversationMessage) -> None:
        self.message_history.append(message)
        self.conversation_depth += 1

    def set_engagement(self, value: float) -> None:
        self.user_engagement = _clamp(float(value))


@dataclass
class UserMemoryContext:
    """
    Everything the filter remembers about a user between calls.

    ``version`` is bumped on every committed change and used for
    compare-and-swap in the trust store.
    """
    user_id: str
    personality_type: str = ""
    recent_interactions: List[str] = field(default_factory=list)
    emotional_state: str = "neutral"
    current_goals: List[str] = field(default_factory=list)
    active_challenges: List[str] = field(default_factory=list)
    preferences: Dict[str, Any] = field(default_factory=dict)
    relationship_history: List[str] = field(default_factory=list)
    trust_level: float = 0.5
    last_interaction: float = field(default_factory=time.time)
    version: int = 0

    def __post_init__(self):
        self.trust_level = _clamp(float(self.trust_level))
        if len(self.recent_interactions) > MAX_RECENT_INTERACTIONS:
            self.recent_interactions = self.recent_interactions[-MAX_RECENT_INTERACTIONS:]

    def copy(self) -> "UserMemoryContext":
        """Deep-enough copy: lists and dicts are not shared with the original."""
        return replace(
            self,
            recent_interactions=list(self.recent_interactions),
            current_goals=list(self.current_goals),
            active_challenges=list(self.active_challenges),
            preferences=dict(self.preferences),
            relationship_history=list(self.relationship_history),
        )

    def remember_interaction(self, text: str) -> None:
        self.recent_interactions.append(text)
        overflow = len(self.recent_interactions) - MAX_RECENT_INTERACTIONS
        if overflow > 0:
            del self.recent_interactions[:overflow]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "personality_type": self.personality_type,
            "recent_interactions": list(self.recent_interactions),
            "emotional_state": self.emotional_state,
            "current_goals": list(self.current_goals),
            "active_challenges": list(self.active_challenges),
            "preferences": dict(self.preferences),
            "relationship_history": list(self.relationship_history),
            "trust_level": self.trust_level,
            "last_interaction": self.last_interaction,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserMemoryContext":
        return cls(
            user_id=str(data["user_id"]),
            personality_type=data.get("personality_type", ""),
            recent_interactions=list(data.get("recent_interactions", [])),
            emotional_state=data.get("emotional_state", "neutral"),
            current_goals=list(data.get("current_goals", [])),
            active_challenges=list(data.get("active_challenges", [])),
            preferences=dict(data.get("preferences", {})),
            relationship_history=list(data.get("relationship_history", [])),
            trust_level=float(data.get("trust_level", 0.5)),
            last_interaction=float(data.get("last_interaction", time.time())),
            version=int(data.get("version", 0)),
        )


# ------------------------------------------------------------------
# Per-call input
# ------------------------------------------------------------------

@dataclass(frozen=True)
class FilteringConfig:
    safety_level: SafetyLevel = SafetyLevel.MEDIUM
    ai_provider: str = "claude"
    personality_type: Optional[str] = None
    context: Optional[str] = None
    allow_creative: Optional[bool] = None        # None = use the safety level's default
    allow_controversial: Optional[bool] = None
    max_response_length: Optional[int] = None
    user_memory: Optional[UserMemoryContext] = None
    conversation_context: Optional[ConversationContext] = None
    emotional_state: Optional[EmotionalState] = None
    enable_refusal_logic: bool = True
    enable_memory_integration: bool = False
    enable_proactive_coaching: bool = True
    user_id: Optional[str] = None                # load memory for this user when none is passed

    def __post_init__(self):
        # Accept plain strings for the level ("high") as well as the enum.
        object.__setattr__(self, "safety_level", SafetyLevel(self.safety_level))


# ------------------------------------------------------------------
# Per-call output
# ------------------------------------------------------------------

@dataclass
class RefusalResult:
    should_refuse: bool = False
    refusal_reason: Optional[RefusalReason] = None
    refusal_message: str = ""
    alternative_suggestion: Optional[str] = None
    escalation_level: EscalationLevel = EscalationLevel.NONE
    escalation_path: Optional[str] = None
    user_can_override: bool = False
    requires_human_review: bool = False
    rule: Optional[str] = None     # name of the rule that fired


@dataclass(frozen=True)
class AuditLogEntry:
    id: str
    timestamp: float
    user_id: str
    session_id: str
    prompt: str
    risk_score: float
    action: AuditAction
    reasoning: str
    ai_provider: str
    safety_level: SafetyLevel
    refusal_reason: Optional[RefusalReason] = None
    escalation_level: Optional[EscalationLevel] = None
    memory_context: Optional[Dict[str, Any]] = None
    emotional_state: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "prompt": self.prompt,
            "risk_score": self.risk_score,
            "action": self.action.value,
            "reasoning": self.reasoning,
            "refusal_reason": self.refusal_reason.value if self.refusal_reason else None,
            "escalation_level": self.escalation_level.value if self.escalation_level else None,
            "memory_context": dict(self.memory_context) if self.memory_context is not None else None,
            "emotional_state": dict(self.emotional_state) if self.emotional_state is not None else None,
            "ai_provider": self.ai_provider,
            "safety_level": self.safety_level.value,
        }


@dataclass
class FilteringResult:
    allowed: bool
    filtered_prompt: str
    safety_score: float
    warnings: List[str] = field(default_factory=list)
    fallback_used: bool = False
    refusal_result: Optional[RefusalResult] = None
    memory_insights: List[str] = field(default_factory=list)
    emotional_guidance: str = ""
    proactive_suggestions: List[str] = field(default_factory=list)
    trust_adjustment: float = 0.0
    audit_log_id: Optional[str] = None
