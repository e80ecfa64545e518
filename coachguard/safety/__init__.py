"""
Prompt safety pipeline: risk scoring, tripwires, refusal rules, prompt
transforms, audit logging, and the service that runs them in order.
"""

from .rules import RiskRule, Tripwire, DEFAULT_RISK_RULES, MANIPULATION_TRIPWIRES, BOUNDARY_TRIPWIRES
from .profiles import SAFETY_LEVELS, PROVIDERS, SafetyLevelProfile, ProviderProfile, provider_profile
from .scorer import RiskScorer, RiskAssessment
from .detector import TripwireDetector
from .refusal import RefusalEngine, RefusalRule, RefusalContext, DEFAULT_REFUSAL_RULES
from .transform import sanitize_prompt, enhance_prompt, validate_prompt, FILTER_MARKER
from .audit_log import AuditLogger, build_audit_entry
from .filter_engine import PromptFilterService
