"""
Risk scoring for inbound prompts.

The score is built in stages:

1. **Rules**: every ``RiskRule`` that fires adds its weight.
2. **Provider**: past the provider's threshold, add its increment.
3. **Context**: coaching conversations get +0.1 once the score is
   already above 0.5.
4. **Memory**: trusted users are damped (×0.8); users whose recent
   interactions look like manipulation are amplified (×1.3).
5. **Emotion**: unstable users are amplified (×1.2); strongly
   positive users are damped (×0.9).

The result is always clamped to [0, 1].  A rule that raises is logged
and counts as zero; it never aborts scoring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models import EmotionalState, FilteringConfig, UserMemoryContext, MAX_RECENT_INTERACTIONS
from .profiles import provider_profile
from .rules import DEFAULT_RISK_RULES, MANIPULATION_HISTORY_RE, RiskRule

logger = logging.getLogger(__name__)

COACHING_CONTEXT = "coaching"
POSITIVE_EMOTIONS = frozenset({
    "happy", "joyful", "excited", "grateful", "hopeful", "content", "calm",
})


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class RiskAssessment:
    """Final score plus the evidence behind it."""
    score: float = 0.0
    rule_score: float = 0.0                       # sum of fired rule weights
    matched_rules: List[str] = field(default_factory=list)
    failed_rules: List[str] = field(default_factory=list)
    adjustments: List[str] = field(default_factory=list)


class RiskScorer:
    """
    Stateless scorer over an ordered rule list.

    Call ``score(prompt, config, memory)`` for the number, or
    ``assess(...)`` for the number and the reasons.
    """

    def __init__(self, rules: Optional[Sequence[RiskRule]] = None):
        self.rules: List[RiskRule] = list(rules if rules is not None else DEFAULT_RISK_RULES)

    def score(
        self,
        prompt: str,
        config: FilteringConfig,
        memory: Optional[UserMemoryContext] = None,
    ) -> float:
        return self.assess(prompt, config, memory).score

    def assess(
        self,
        prompt: str,
        config: FilteringConfig,
        memory: Optional[UserMemoryContext] = None,
    ) -> RiskAssessment:
        result = RiskAssessment()

        # 1. Rules
        total = 0.0
        for rule in self.rules:
            try:
                fired = rule.matches(prompt)
            except Exception as e:
                logger.warning("Risk rule %s failed, scoring it as 0: %s", rule.name, e)
                result.failed_rules.append(rule.name)
                continue
            if fired:
                total += rule.weight
                result.matched_rules.append(rule.name)
        result.rule_score = total

        # 2. Provider escalation
        provider = provider_profile(config.ai_provider)
        if total > provider.risk_threshold:
            total += provider.risk_increment
            result.adjustments.append(f"provider:{provider.name}+{provider.risk_increment}")

        # 3. Context
        if config.context == COACHING_CONTEXT and total > 0.5:
            total += 0.1
            result.adjustments.append("context:coaching+0.1")

        total = min(total, 1.0)

        # 4. Memory
        if memory is None:
            memory = config.user_memory
        if memory is not None:
            total = self._apply_memory(total, memory, result)

        # 5. Emotion
        if config.emotional_state is not None:
            total = self._apply_emotion(total, config.emotional_state, result)

        result.score = _clamp(total)
        return result

    # ── Internal ─────────────────────────────────────────────

    @staticmethod
    def _apply_memory(total: float, memory: UserMemoryContext, result: RiskAssessment) -> float:
        if memory.trust_level > 0.8:
            total *= 0.8
            result.adjustments.append("memory:trusted*0.8")
        recent = memory.recent_interactions[-MAX_RECENT_INTERACTIONS:]
        if any(MANIPULATION_HISTORY_RE.search(i) for i in recent):
            total *= 1.3
            result.adjustments.append("memory:manipulation_history*1.3")
        return total

    @staticmethod
    def _apply_emotion(total: float, emotion: EmotionalState, result: RiskAssessment) -> float:
        if emotion.stability < 0.3:
            total *= 1.2
            result.adjustments.append("emotion:unstable*1.2")
        if emotion.primary.lower() in POSITIVE_EMOTIONS and emotion.intensity > 0.7:
            total *= 0.9
            result.adjustments.append("emotion:positive*0.9")
        return total
