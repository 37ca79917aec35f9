"""
Risk engine domain payloads.

Rules, feature records and score outputs exchanged between the rule catalog,
the evaluators, the score store and the API layer.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RuleScope(str, Enum):
    DOCUMENT = "document"
    COMPANY = "company"


class EntityType(str, Enum):
    DOCUMENT = "document"
    COMPANY = "company"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# ── Rule catalog ──

def _check_rule_config(config: dict[str, Any]) -> dict[str, Any]:
    threshold = config.get("threshold")
    if threshold is not None:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise ValueError("config.threshold must be a number")
        if threshold < 0:
            raise ValueError("config.threshold must be >= 0")

    days = config.get("days")
    if days is not None:
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValueError("config.days must be a positive integer")
    return config


class RiskRule(BaseModel):
    """A weighted, tenant-scoped predicate. Immutable during one evaluation pass."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    tenant_id: Optional[str] = Field(None, description="None for global rules")
    code: str = Field(min_length=1, max_length=100)
    scope: RuleScope
    weight: float = Field(ge=0, le=100)
    default_severity: Severity = Severity.MEDIUM
    active: bool = True
    description: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def validate_config(cls, v: Any) -> dict[str, Any]:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("config must be an object")
        return _check_rule_config(v)


class RiskRuleCreate(BaseModel):
    code: str = Field(min_length=1, max_length=100)
    scope: RuleScope
    weight: float = Field(ge=0, le=100)
    default_severity: Severity = Severity.MEDIUM
    active: bool = True
    description: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("config")
    @classmethod
    def validate_config(cls, v: dict[str, Any]) -> dict[str, Any]:
        return _check_rule_config(v)


class RiskRuleUpdate(BaseModel):
    weight: Optional[float] = Field(None, ge=0, le=100)
    default_severity: Optional[Severity] = None
    active: Optional[bool] = None
    description: Optional[str] = None
    config: Optional[dict[str, Any]] = None

    @field_validator("config")
    @classmethod
    def validate_config(cls, v: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        return _check_rule_config(v) if v is not None else v


# ── Feature records (produced upstream) ──

class RiskFlag(BaseModel):
    code: str
    severity: Optional[str] = None
    description: Optional[str] = None
    value: Optional[float] = None


class DocumentRiskFeatures(BaseModel):
    tenant_id: str
    document_id: str
    features: dict[str, Any] = Field(default_factory=dict)
    risk_flags: list[RiskFlag] = []
    risk_score: Optional[float] = None
    generated_at: Optional[datetime] = None


# ── Score outputs ──

class DocumentRiskScore(BaseModel):
    tenant_id: str
    document_id: str
    score: float = Field(ge=0, le=100)
    severity: Severity
    triggered_rule_codes: list[str]
    generated_at: datetime
    degraded_signals: list[str] = Field(
        default_factory=list,
        description="Fraud signals that fell back to their neutral default in this run",
    )


class ClientCompanyRiskScore(BaseModel):
    tenant_id: str
    client_company_id: str
    score: float = Field(ge=0, le=100)
    severity: Severity
    triggered_rule_codes: list[str]
    generated_at: datetime
    degraded_signals: list[str] = Field(default_factory=list)


class RiskScoreHistoryEntry(BaseModel):
    entity_type: EntityType
    entity_id: str
    score: float
    severity: Severity
    created_at: datetime


class RiskTrend(BaseModel):
    entity_type: EntityType
    entity_id: str
    history: list[RiskScoreHistoryEntry]
    current_score: float
    previous_score: Optional[float] = None
    trend: TrendDirection
    average_score: float
    min_score: float
    max_score: float


# ── Alerts ──

class AlertRequest(BaseModel):
    tenant_id: str
    client_company_id: Optional[str] = None
    document_id: Optional[str] = None
    type: str
    title: str
    message: str
    severity: Severity
