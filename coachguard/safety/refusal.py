"""
Refusal decision engine.

An ordered list of ``RefusalRule`` objects is evaluated top to bottom;
the first rule whose condition holds produces the verdict and nothing
after it is looked at.  A prompt that no rule catches is allowed.

Baseline order::

    1. high_risk      risk > 0.8                 -> safety, admin, human review
    2. manipulation   manipulation tripwire      -> manipulation, user
    3. boundaries     boundary tripwire          -> boundaries, user
    4. low_trust      trust < 0.3 and risk > 0.5 -> safety, user (caution)

``user_can_override`` is a per-rule switch.  It is off for every
baseline rule; the UI only shows an override control when a rule has
it switched on explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence

from ..models import EscalationLevel, RefusalReason, RefusalResult
from .detector import TripwireDetector

ESCALATION_PATHS: Dict[EscalationLevel, str] = {
    EscalationLevel.USER: "user_notification",
    EscalationLevel.ADMIN: "safety_review_queue",
    EscalationLevel.EMERGENCY: "emergency_contact",
}


@dataclass(frozen=True)
class RefusalContext:
    """Everything a refusal condition may look at."""
    prompt: str
    risk_score: float
    trust_level: Optional[float]   # None when there is no user memory
    manipulation: bool
    boundary_violation: bool


@dataclass(frozen=True)
class RefusalRule:
    name: str
    condition: Callable[[RefusalContext], bool]
    reason: RefusalReason
    message: str
    escalation: EscalationLevel
    alternative: Optional[str] = None
    requires_human_review: bool = False
    user_can_override: bool = False

    def build_result(self) -> RefusalResult:
        return RefusalResult(
            should_refuse=True,
            refusal_reason=self.reason,
            refusal_message=self.message,
            alternative_suggestion=self.alternative,
            escalation_level=self.escalation,
            escalation_path=ESCALATION_PATHS.get(self.escalation),
            user_can_override=self.user_can_override,
            requires_human_review=self.requires_human_review,
            rule=self.name,
        )


def _low_trust(ctx: RefusalContext) -> bool:
    return ctx.trust_level is not None and ctx.trust_level < 0.3 and ctx.risk_score > 0.5


DEFAULT_REFUSAL_RULES: List[RefusalRule] = [
    RefusalRule(
        name="high_risk",
        condition=lambda ctx: ctx.risk_score > 0.8,
        reason=RefusalReason.SAFETY,
        message="I cannot help with this request as it may be harmful or inappropriate.",
        escalation=EscalationLevel.ADMIN,
        requires_human_review=True,
    ),
    RefusalRule(
        name="manipulation",
        condition=lambda ctx: ctx.manipulation,
        reason=RefusalReason.MANIPULATION,
        message="I cannot be manipulated or convinced to ignore my guidelines.",
        escalation=EscalationLevel.USER,
        alternative="How can I help you with your personal development goals instead?",
    ),
    RefusalRule(
        name="boundaries",
        condition=lambda ctx: ctx.boundary_violation,
        reason=RefusalReason.BOUNDARIES,
        message="I need to maintain appropriate boundaries in our coaching relationship.",
        escalation=EscalationLevel.USER,
        alternative="Let's focus on your personal growth and development instead.",
    ),
    RefusalRule(
        name="low_trust",
        condition=_low_trust,
        reason=RefusalReason.SAFETY,
        message="I need to be more cautious with this request.",
        escalation=EscalationLevel.USER,
        alternative="Let's start with something simpler to build trust.",
    ),
]


class RefusalEngine:
    """
    Usage::

        engine = RefusalEngine()
        verdict = engine.evaluate(prompt, risk_score=0.3, trust_level=0.6)
        if verdict.should_refuse:
            show_refusal(verdict.refusal_message)
    """

    def __init__(
        self,
        rules: Optional[Sequence[RefusalRule]] = None,
        detector: Optional[TripwireDetector] = None,
    ):
        self.rules: List[RefusalRule] = list(rules if rules is not None else DEFAULT_REFUSAL_RULES)
        self.detector = detector or TripwireDetector()

    @property
    def rule_names(self) -> List[str]:
        return [r.name for r in self.rules]

    def evaluate(
        self,
        prompt: str,
        risk_score: float,
        trust_level: Optional[float] = None,
    ) -> RefusalResult:
        ctx = RefusalContext(
            prompt=prompt,
            risk_score=risk_score,
            trust_level=trust_level,
            manipulation=self.detector.detect_manipulation(prompt),
            boundary_violation=self.detector.detect_boundary_violation(prompt),
        )
        for rule in self.rules:
            if rule.condition(ctx):
                return rule.build_result()
        return RefusalResult()

    def set_user_can_override(self, rule_name: str, enabled: bool) -> bool:
        """Flip the override permission of one rule.  Returns False for unknown rules."""
        for idx, rule in enumerate(self.rules):
            if rule.name == rule_name:
                self.rules[idx] = replace(rule, user_can_override=bool(enabled))
                return True
        return False
