from .events import EventBus
from .config import Config
from .models import (
    SafetyLevel,
    RefusalReason,
    EscalationLevel,
    AuditAction,
    EmotionalState,
    ConversationMessage,
    ConversationContext,
    UserMemoryContext,
    FilteringConfig,
    RefusalResult,
    AuditLogEntry,
    FilteringResult,
)
from .memory import TrustStateStore, InMemoryRepository, JsonFileRepository, SqliteRepository
from .safety import PromptFilterService, RiskScorer, RefusalEngine, AuditLogger
