"""
Prompt filter service: the pipeline between a user's message and the
AI provider.

One ``filter_prompt`` call runs, in order:

    1. risk scoring            (rules + provider/context/memory/emotion)
    2. refusal decision        (first matching rule wins)
    3. sanitize -> enhance -> validate
    4. trust adjustment        (committed to the trust store)
    5. audit entry             (committed to the audit log)
    6. coaching insights

State is only committed once the whole result has been computed, and
for a known user the pipeline runs inside that user's lock, so
overlapping calls for the same user never lose trust updates.  Any
unexpected exception produces the fallback result and commits nothing.

A refusal is a normal result.  ``fallback_used`` is True only when the
pipeline itself failed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from ..events import FILTER_CONFIG_CHANGED, SAFETY_CONFIG_CHANGED
from ..insights import (
    generate_emotional_guidance,
    generate_memory_insights,
    generate_proactive_suggestions,
)
from ..memory.repository import MemoryRepository
from ..memory.trust_store import (
    TrustStateStore,
    apply_adjustment,
    compute_trust_adjustment,
)
from ..models import (
    FilteringConfig,
    FilteringResult,
    RefusalResult,
    SafetyLevel,
    UserMemoryContext,
)
from .audit_log import (
    ANONYMOUS_USER,
    DEFAULT_CAPACITY,
    AuditLogger,
    build_audit_entry,
    decide_action,
)
from .profiles import PROVIDER_ORDER, SAFETY_LEVELS, fallback_prompt
from .refusal import RefusalEngine
from .scorer import RiskScorer
from .transform import enhance_prompt, sanitize_prompt, validate_prompt

logger = logging.getLogger(__name__)

FALLBACK_WARNING = "Filtering failed, using fallback"


class PromptFilterService:
    """
    Usage::

        service = PromptFilterService(event_bus, config, JsonFileRepository("user_memory"))

        result = await service.filter_prompt(
            "How do I handle conflict at work?",
            FilteringConfig(safety_level="medium", ai_provider="claude", user_id="alice"),
        )
        if result.allowed:
            reply = await provider.complete(result.filtered_prompt)
        else:
            show_refusal(result.refusal_result)

        await service.save_user_memory("alice")
    """

    def __init__(
        self,
        event_bus: Optional[Any] = None,
        config: Optional[Any] = None,
        repository: Optional[MemoryRepository] = None,
        *,
        scorer: Optional[RiskScorer] = None,
        refusal_engine: Optional[RefusalEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        trust_store: Optional[TrustStateStore] = None,
    ):
        self.bus = event_bus
        self.config = config
        self.scorer = scorer or RiskScorer()
        self.refusal = refusal_engine or RefusalEngine()
        self.trust = trust_store or TrustStateStore(repository, event_bus)

        # {level: max_risk_score}
        self._ceilings: Dict[SafetyLevel, float] = {
            level: profile.max_risk_score for level, profile in SAFETY_LEVELS.items()
        }

        capacity = DEFAULT_CAPACITY
        log_dir: Optional[Path] = None
        if self.config is not None:
            self._load_config()
            capacity = self.config.audit_capacity(DEFAULT_CAPACITY)
            log_dir = self.config.audit_log_dir()
        self.audit = audit_logger or AuditLogger(capacity, log_dir, event_bus)

        if self.bus is not None:
            self.bus.subscribe(SAFETY_CONFIG_CHANGED, self._on_safety_config)

    # ── Public API ───────────────────────────────────────────

    async def filter_prompt(self, prompt: str, config: FilteringConfig) -> FilteringResult:
        """Score, decide, transform, commit, and return the result for one message."""
        try:
            user_id = self._resolve_user_id(config)
            if user_id is None:
                return self._run(prompt, config, None, ANONYMOUS_USER)

            async with self.trust.user_lock(user_id):
                memory = await self._memory_snapshot(user_id, config)
                return self._run(prompt, config, memory, user_id)
        except Exception:
            logger.exception("Prompt filtering failed, using fallback")
            return self._fallback(config)

    def get_audit_logs(self, user_id: str, limit: int = 100):
        return self.audit.get_audit_logs(user_id, limit)

    def get_user_memory(self, user_id: str) -> Optional[UserMemoryContext]:
        return self.trust.get(user_id)

    def set_user_memory(self, memory: UserMemoryContext) -> None:
        self.trust.set(memory)

    async def load_user_memory(self, user_id: str, personality_type: str = "") -> UserMemoryContext:
        return await self.trust.load(user_id, personality_type)

    async def save_user_memory(self, user_id: str) -> bool:
        return await self.trust.save(user_id)

    def max_risk_score(self, level: SafetyLevel | str) -> float:
        return self._ceilings[SafetyLevel(level)]

    def set_max_risk_score(self, level: SafetyLevel | str, value: float) -> None:
        level = SafetyLevel(level)
        self._ceilings[level] = max(0.0, min(1.0, float(value)))
        self._save_setting(f"safety.levels.{level.value}.max_risk_score", self._ceilings[level])

    def set_rule_override(self, rule_name: str, enabled: bool) -> bool:
        """Allow (or forbid) the user to override refusals from one rule."""
        if not self.refusal.set_user_can_override(rule_name, enabled):
            logger.warning("Unknown refusal rule: %s", rule_name)
            return False
        self._save_setting(f"refusal.{rule_name}.user_can_override", bool(enabled))
        return True

    async def test_filtering(
        self,
        prompts: Iterable[str],
        providers: Iterable[str] = PROVIDER_ORDER,
        levels: Iterable[SafetyLevel] = tuple(SafetyLevel),
        personality_type: str = "INFJ",
        context: str = "coaching",
    ) -> Dict[str, Dict[str, Dict[str, FilteringResult]]]:
        """Run every prompt against every provider and safety level."""
        prompts = list(prompts)
        levels = [SafetyLevel(level) for level in levels]
        results: Dict[str, Dict[str, Dict[str, FilteringResult]]] = {}
        for provider in providers:
            results[provider] = {}
            for level in levels:
                results[provider][level.value] = {}
                for prompt in prompts:
                    cfg = FilteringConfig(
                        safety_level=level,
                        ai_provider=provider,
                        personality_type=personality_type,
                        context=context,
                    )
                    results[provider][level.value][prompt] = await self.filter_prompt(prompt, cfg)
        return results

    # ── Pipeline ─────────────────────────────────────────────

    @staticmethod
    def _resolve_user_id(config: FilteringConfig) -> Optional[str]:
        if config.user_memory is not None:
            return config.user_memory.user_id
        return config.user_id

    async def _memory_snapshot(self, user_id: str, config: FilteringConfig) -> UserMemoryContext:
        """
        The memory this call works on.  The trust store owns trust,
        version, and interaction history; a memory passed in the config
        only contributes the caller-maintained profile fields.
        """
        supplied = config.user_memory
        cached = self.trust.get(user_id)
        if supplied is None:
            if cached is None:
                cached = await self.trust.load(user_id, config.personality_type or "")
            return cached.copy()
        if cached is None:
            return supplied.copy()

        snapshot = cached.copy()
        snapshot.personality_type = supplied.personality_type or cached.personality_type
        snapshot.emotional_state = supplied.emotional_state
        snapshot.current_goals = list(supplied.current_goals)
        snapshot.active_challenges = list(supplied.active_challenges)
        snapshot.preferences = dict(supplied.preferences)
        snapshot.relationship_history = list(supplied.relationship_history)
        return snapshot

    def _run(
        self,
        prompt: str,
        config: FilteringConfig,
        memory: Optional[UserMemoryContext],
        user_id: str,
    ) -> FilteringResult:
        assessment = self.scorer.assess(prompt, config, memory)
        risk = assessment.score

        if config.enable_refusal_logic:
            trust = memory.trust_level if memory is not None else None
            refusal = self.refusal.evaluate(prompt, risk, trust)
        else:
            refusal = RefusalResult()

        sanitized = sanitize_prompt(prompt, has_memory=memory is not None)
        enhanced = enhance_prompt(sanitized, config, memory)
        warnings = validate_prompt(enhanced, config, memory)

        allowed = risk <= self._ceilings[config.safety_level] and not refusal.should_refuse
        adjustment = compute_trust_adjustment(risk, refusal)
        action = decide_action(refusal, allowed, modified=sanitized != prompt.strip())
        entry = build_audit_entry(prompt, config, risk, refusal, action, user_id, memory)

        updated: Optional[UserMemoryContext] = None
        if memory is not None:
            updated = apply_adjustment(memory, adjustment, interaction=prompt)

        suggestions = (
            generate_proactive_suggestions(updated, config.emotional_state)
            if config.enable_proactive_coaching else []
        )
        result = FilteringResult(
            allowed=allowed,
            filtered_prompt=enhanced,
            safety_score=risk,
            warnings=warnings,
            fallback_used=False,
            refusal_result=refusal,
            memory_insights=generate_memory_insights(updated),
            emotional_guidance=generate_emotional_guidance(config.emotional_state),
            proactive_suggestions=suggestions,
            trust_adjustment=adjustment,
        )

        # Commit.  Nothing above this line touches shared state.
        if updated is not None:
            self.trust.commit(updated, expected_version=memory.version)
        result.audit_log_id = self.audit.record(entry)

        logger.info(
            "Prompt filtered: user=%s provider=%s level=%s risk=%.2f allowed=%s "
            "refused=%s rules=%s trust_adjustment=%+.2f",
            user_id, config.ai_provider, config.safety_level.value, risk, allowed,
            refusal.should_refuse, ",".join(assessment.matched_rules) or "-", adjustment,
        )
        return result

    @staticmethod
    def _fallback(config: Optional[FilteringConfig]) -> FilteringResult:
        provider = getattr(config, "ai_provider", "generic")
        return FilteringResult(
            allowed=False,
            filtered_prompt=fallback_prompt(provider),
            safety_score=1.0,
            warnings=[FALLBACK_WARNING],
            fallback_used=True,
        )

    # ── Config persistence ───────────────────────────────────

    def _load_config(self) -> None:
        if self.config is None:
            return
        for level in SafetyLevel:
            ceiling = self.config.level_ceiling(level.value)
            if ceiling is not None:
                self._ceilings[level] = ceiling
        for name in self.refusal.rule_names:
            override = self.config.rule_override(name)
            if override is not None:
                self.refusal.set_user_can_override(name, override)

    def _save_setting(self, key: str, value: Any) -> None:
        if self.config is not None:
            self.config.set(key, value)
        if self.bus is not None:
            self.bus.publish(FILTER_CONFIG_CHANGED, {"key": key, "value": value})

    # ── Event handlers ───────────────────────────────────────

    def _on_safety_config(self, data: Dict[str, Any]) -> None:
        """Handle ``safety_config_changed`` from a settings panel."""
        rule = data.get("rule")
        if rule and "user_can_override" in data:
            self.set_rule_override(rule, bool(data["user_can_override"]))
        level = data.get("level")
        if level and "max_risk_score" in data:
            self.set_max_risk_score(level, float(data["max_risk_score"]))
