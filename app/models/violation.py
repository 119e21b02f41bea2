"""
Violation schemas exchanged with the rules engine and the notifier.

- ViolationCandidate: what a rule evaluator hands to the recorder
- ViolationEvent: snapshot of a recorded violation used for alert payloads
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.rule_violation import RuleViolation, Severity


class ViolationCandidate(BaseModel):
    """
    Violation proposed by a rule evaluator, not yet deduplicated or stored.

    Example:
        ViolationCandidate(
            rule_id=3,
            user_name="alice",
            severity=Severity.WARNING,
            message="3 concurrent streams (limit 2)",
            confidence_score=85.0,
            session_key="plex-session-42",
        )
    """
    rule_id: int = Field(..., gt=0, description="Rule that raised the violation")
    user_name: str = Field(..., min_length=1)
    severity: Severity
    message: str = Field(..., min_length=1)
    details: Dict[str, Any] = Field(default_factory=dict, description="Opaque evaluator payload")
    confidence_score: float = Field(0.0, ge=0, le=100)
    session_key: str = Field("", description="Streaming session correlation token")
    occurred_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("session_key", mode="before")
    @classmethod
    def none_session_key_is_empty(cls, v):
        return v or ""


class ViolationEvent(BaseModel):
    """Immutable alert payload source for a recorded violation."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    rule_id: int
    rule_name: str
    user_name: str
    severity: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    confidence_score: float = 0.0
    occurred_at: datetime

    @classmethod
    def from_violation(cls, violation: RuleViolation, rule_name: str) -> "ViolationEvent":
        return cls(
            id=violation.id,
            rule_id=violation.rule_id,
            rule_name=rule_name,
            user_name=violation.user_name,
            severity=violation.severity,
            message=violation.message,
            details=violation.details or {},
            confidence_score=violation.confidence_score,
            occurred_at=violation.occurred_at,
        )
