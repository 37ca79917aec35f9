"""
Risk engine error taxonomy.

NotFoundError        → entity missing OR owned by another tenant (never distinguished)
RuleConfigError      → malformed rule configuration (the validation error class)
TransientDependencyFailure → a fraud signal / lookup failed; caught and defaulted
FatalDataError       → a required input is missing, no score can be computed
"""
from __future__ import annotations


class RiskEngineError(Exception):
    """Base class for all risk engine errors."""


class NotFoundError(RiskEngineError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class RuleConfigError(RiskEngineError):
    def __init__(self, rule_code: str, detail: str):
        self.rule_code = rule_code
        self.detail = detail
        super().__init__(f"Invalid configuration for rule {rule_code}: {detail}")


class TransientDependencyFailure(RiskEngineError):
    """Raised inside a signal computation; never escapes an evaluation."""


class FatalDataError(RiskEngineError):
    pass


class MissingFeaturesError(NotFoundError, FatalDataError):
    def __init__(self, document_id: str):
        super().__init__("Document risk features", document_id)
