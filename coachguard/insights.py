"""
Coaching hints derived from the user's memory and emotional state.

These are advisory strings for the caller (or the coach persona); they
never influence whether a prompt is allowed.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .models import EmotionalState, UserMemoryContext

# (keyword, suggestion), matched case-insensitively as a substring of
# any current goal or active challenge.
_GOAL_SUGGESTIONS: List[Tuple[str, str]] = [
    ("stress", "Consider suggesting mindfulness exercises"),
    ("relationship", "Offer communication skill exercises"),
    ("perfectionism", "Suggest self-compassion practices"),
    ("overwhelm", "Suggest breaking tasks into smaller steps"),
]


def generate_memory_insights(memory: Optional[UserMemoryContext]) -> List[str]:
    insights: List[str] = []
    if memory is None:
        return insights

    if len(memory.recent_interactions) >= 5:
        insights.append("User shows consistent engagement patterns")
    if memory.trust_level > 0.8:
        insights.append("High trust relationship established")
    if len(memory.active_challenges) >= 3:
        insights.append("User has multiple active challenges - prioritize support")
    return insights


def generate_emotional_guidance(emotion: Optional[EmotionalState]) -> str:
    """One guidance line, most urgent condition first; "" when nothing applies."""
    if emotion is None:
        return ""

    if emotion.stability < 0.3:
        return "User appears emotionally unstable - provide gentle, supportive responses"
    if emotion.intensity > 0.8:
        return (
            f"User is experiencing intense {emotion.primary} emotions - "
            "validate and provide coping strategies"
        )
    primary = emotion.primary.lower()
    if primary == "anxious":
        return "User shows anxiety - focus on calming, practical advice"
    if primary == "sad":
        return "User appears sad - provide empathy and hope"
    return ""


def generate_proactive_suggestions(
    memory: Optional[UserMemoryContext],
    emotion: Optional[EmotionalState] = None,
) -> List[str]:
    topics: List[str] = []
    if memory is not None:
        topics.extend(t.lower() for t in memory.current_goals)
        topics.extend(t.lower() for t in memory.active_challenges)
    if emotion is not None:
        topics.append(emotion.primary.lower())

    suggestions: List[str] = []
    for keyword, suggestion in _GOAL_SUGGESTIONS:
        if any(keyword in topic for topic in topics):
            suggestions.append(suggestion)
    return suggestions
