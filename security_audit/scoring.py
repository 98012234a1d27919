"""
Security Audit - Risk Scoring.

============================================================
ADDITIVE, EXPLAINABLE SCORING
============================================================

    status >= 400                          +1
    status >= 500                          +2
    action login_failed                    +3
    action unauthorized_access             +4
    action suspicious_activity             +5
    category security                      +2
    category authentication                +1
    bot-like user agent                    +2
    repeated recent login failures         +3

    >= 8 critical, >= 5 high, >= 3 medium, >= 1 low, else minimal

Every factor adds a non-negative weight, so adding a factor
can never lower the level.

============================================================
"""

from typing import Dict, List, Tuple

from .models import AuditEvent, RiskLevel


ACTION_WEIGHTS: Dict[str, int] = {
    "login_failed": 3,
    "unauthorized_access": 4,
    "suspicious_activity": 5,
}

CATEGORY_WEIGHTS: Dict[str, int] = {
    "security": 2,
    "authentication": 1,
}

BOT_AGENT_MARKERS = ("bot", "crawler", "scanner")

CLIENT_ERROR_WEIGHT = 1
SERVER_ERROR_WEIGHT = 2
BOT_AGENT_WEIGHT = 2
REPEATED_FAILURE_WEIGHT = 3

LEVEL_THRESHOLDS: List[Tuple[int, RiskLevel]] = [
    (8, RiskLevel.CRITICAL),
    (5, RiskLevel.HIGH),
    (3, RiskLevel.MEDIUM),
    (1, RiskLevel.LOW),
]


def is_bot_agent(user_agent: str) -> bool:
    agent = (user_agent or "").lower()
    return any(marker in agent for marker in BOT_AGENT_MARKERS)


def score_factors(
    event: AuditEvent,
    recent_failures: int = 0,
    failure_threshold: int = 3,
) -> Dict[str, int]:
    """Individual contributions, keyed by factor name."""
    factors: Dict[str, int] = {}

    if event.status_code >= 400:
        factors["client_error"] = CLIENT_ERROR_WEIGHT
    if event.status_code >= 500:
        factors["server_error"] = SERVER_ERROR_WEIGHT

    action_weight = ACTION_WEIGHTS.get(event.action)
    if action_weight:
        factors[f"action:{event.action}"] = action_weight

    category_weight = CATEGORY_WEIGHTS.get(event.category)
    if category_weight:
        factors[f"category:{event.category}"] = category_weight

    if is_bot_agent(event.user_agent):
        factors["bot_agent"] = BOT_AGENT_WEIGHT

    if recent_failures > failure_threshold:
        factors["repeated_failures"] = REPEATED_FAILURE_WEIGHT

    return factors


def risk_score(event: AuditEvent, recent_failures: int = 0, failure_threshold: int = 3) -> int:
    return sum(score_factors(event, recent_failures, failure_threshold).values())


def classify_score(score: int) -> RiskLevel:
    for minimum, level in LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return RiskLevel.MINIMAL


def calculate_risk_level(event: AuditEvent, recent_failures: int = 0, failure_threshold: int = 3) -> RiskLevel:
    return classify_score(risk_score(event, recent_failures, failure_threshold))
