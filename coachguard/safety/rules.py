"""
Named rule definitions for risk scoring and tripwire detection.

Every rule is an independent predicate over the raw prompt:

* ``RiskRule``: a weighted predicate.  The scorer sums the weights of
  every rule that fires.
* ``Tripwire``: an unweighted predicate.  The detector only cares
  whether any tripwire in a list fires.

Rules are kept in ordered lists so they can be tested one by one and
extended without touching the scorer or the orchestrator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Pattern

Predicate = Callable[[str], bool]


# ------------------------------------------------------------------
# Rule dataclasses
# ------------------------------------------------------------------

@dataclass(frozen=True)
class RiskRule:
    name: str                      # e.g. "prompt_injection"
    weight: float                  # added to the score when the rule fires
    predicate: Predicate
    description: str = ""

    def matches(self, prompt: str) -> bool:
        return bool(self.predicate(prompt))


@dataclass(frozen=True)
class Tripwire:
    name: str
    predicate: Predicate
    description: str = ""

    def matches(self, prompt: str) -> bool:
        return bool(self.predicate(prompt))


# ------------------------------------------------------------------
# Helpers: compile patterns once at module load
# ------------------------------------------------------------------

def _p(pattern: str, flags: int = re.IGNORECASE) -> Pattern[str]:
    return re.compile(pattern, flags)


def pattern_predicate(pattern: Pattern[str] | str) -> Predicate:
    """Wrap a regex (compiled or not) as a ``search`` predicate."""
    rx = _p(pattern) if isinstance(pattern, str) else pattern
    return lambda text: rx.search(text) is not None


def stems_predicate(*stems: str) -> Predicate:
    """
    Match any stem at the start of a word, so ``"ignore"`` also catches
    "ignored" / "ignoring" but ``"root"`` does not catch "routine".
    """
    alternatives = "|".join(re.escape(s) for s in stems)
    return pattern_predicate(_p(rf"\b(?:{alternatives})"))


# ------------------------------------------------------------------
# Risk rules (ordered)
# ------------------------------------------------------------------

DEFAULT_RISK_RULES: List[RiskRule] = [
    RiskRule(
        "instruction_override", 0.3,
        stems_predicate("ignore", "forget", "disregard"),
        "Asks the model to drop earlier instructions.",
    ),
    RiskRule(
        "privileged_role", 0.4,
        stems_predicate("system", "admin", "root"),
        "Impersonates or targets system/admin roles.",
    ),
    RiskRule(
        "prompt_injection", 0.8,
        stems_predicate("prompt", "injection", "jailbreak"),
        "Injection and jailbreak vocabulary.",
    ),
    RiskRule(
        "harmful_content", 0.6,
        stems_predicate("harmful", "dangerous", "illegal"),
        "Harmful or illegal subject matter.",
    ),
    RiskRule(
        "manipulation", 0.5,
        stems_predicate("manipulat", "control", "influenc"),
        "Manipulation and control vocabulary.",
    ),
    RiskRule(
        "personal_data", 0.4,
        pattern_predicate(r"\bpersonal\b.*\bdata\b|\bprivate\b.*\binfo"),
        "Requests for personal or private data.",
    ),
    RiskRule(
        "bypass", 0.7,
        stems_predicate("bypass", "circumvent", "override"),
        "Attempts to bypass or override safeguards.",
    ),
]


# ------------------------------------------------------------------
# Tripwires
# ------------------------------------------------------------------

MANIPULATION_TRIPWIRES: List[Tripwire] = [
    Tripwire("ignore_instructions",
             pattern_predicate(r"\bignore\s+(previous|all|system|instructions)")),
    Tripwire("forget_instructions",
             pattern_predicate(r"\bforget\s+(everything|all|previous)")),
    Tripwire("identity_swap",
             pattern_predicate(r"\byou\s+are\s+now\s+(a\s+different|not)\b")),
    Tripwire("pretend", pattern_predicate(r"\bpretend\s+to\s+be\b")),
    Tripwire("act_as_if", pattern_predicate(r"\bact\s+as\s+if\b")),
    Tripwire("roleplay", pattern_predicate(r"\broleplay\s+as\b")),
    Tripwire("jailbreak", pattern_predicate(r"jailbreak")),
    Tripwire("prompt_injection", pattern_predicate(r"\bprompt\s+injection\b")),
]

BOUNDARY_TRIPWIRES: List[Tripwire] = [
    Tripwire("personal_data",
             pattern_predicate(r"\bpersonal\s+data\b|\bprivate\s+info"),
             "Personal or private data about anyone."),
    Tripwire("medical",
             pattern_predicate(r"\bmedical\s+advice\b|\bdiagnos(is|e)\b"),
             "Medical diagnosis or treatment."),
    Tripwire("legal",
             pattern_predicate(r"\blegal\s+advice\b|\bcounsel"),
             "Legal counsel."),
    Tripwire("financial",
             pattern_predicate(r"\bfinancial\s+advice\b|\binvestment"),
             "Financial or investment advice."),
    Tripwire("third_party_relationship",
             pattern_predicate(r"\brelationship\s+advice\s+for\s+others\b"),
             "Relationship advice aimed at someone else."),
]

# Keywords that mark an earlier interaction as a manipulation attempt.
MANIPULATION_HISTORY_RE = _p(r"manipulat|\bignor(e|ed|ing)\b|jailbreak|\bbypass|pretend\s+to\s+be")
