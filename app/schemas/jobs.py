"""
Background job payload for risk calculation.

The queue itself lives outside this service; this is the only contract
a producer needs to honour.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RiskCalculationJob(BaseModel):
    tenant_id: str = Field(min_length=1)
    client_company_id: Optional[str] = Field(
        None,
        description="Evaluate one company. Omitted together with document_id → all active companies of the tenant.",
    )
    document_id: Optional[str] = Field(None, description="Evaluate one document")
