"""
Risk evaluation endpoints.

POST /v1/risk/documents/{document_id}/evaluate   → inline document evaluation
POST /v1/risk/companies/{company_id}/evaluate    → inline client company evaluation
POST /v1/risk/jobs                               → background risk calculation (202)
GET  /v1/risk/{entity_type}/{entity_id}/trend    → score trend over a window
GET  /v1/risk/health                             → health check

The tenant always comes from the token; entities of other tenants are 404.
"""
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_tenant_id
from app.models.database import async_session, get_db
from app.schemas.jobs import RiskCalculationJob
from app.schemas.risk import ClientCompanyRiskScore, DocumentRiskScore, EntityType, RiskTrend
from app.services.risk_evaluator import build_risk_engine
from app.services.risk_jobs import process_risk_calculation_job
from app.services.risk_trend import DEFAULT_TREND_DAYS, RiskTrendService
from app.services.score_store import ScoreStore

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/risk", tags=["risk"])


class RiskJobRequest(BaseModel):
    client_company_id: Optional[str] = None
    document_id: Optional[str] = None


class RiskJobAccepted(BaseModel):
    status: str
    job: RiskCalculationJob


@router.post(
    "/documents/{document_id}/evaluate",
    response_model=DocumentRiskScore,
    summary="Evaluate the risk of one document",
)
async def evaluate_document(
    document_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> DocumentRiskScore:
    logger.info("document_evaluation_requested", tenant_id=tenant_id, document_id=document_id)
    return await build_risk_engine(db).evaluate_document(tenant_id, document_id)


@router.post(
    "/companies/{company_id}/evaluate",
    response_model=ClientCompanyRiskScore,
    summary="Evaluate the risk of one client company",
)
async def evaluate_company(
    company_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> ClientCompanyRiskScore:
    logger.info("company_evaluation_requested", tenant_id=tenant_id, client_company_id=company_id)
    return await build_risk_engine(db).evaluate_client_company(tenant_id, company_id)


@router.post(
    "/jobs",
    status_code=202,
    response_model=RiskJobAccepted,
    summary="Schedule a risk calculation job",
    description="Without ids, every active client company of the tenant is re-evaluated.",
)
async def schedule_risk_job(
    request: RiskJobRequest,
    background_tasks: BackgroundTasks,
    tenant_id: str = Depends(get_tenant_id),
) -> RiskJobAccepted:
    job = RiskCalculationJob(tenant_id=tenant_id, **request.model_dump())
    background_tasks.add_task(process_risk_calculation_job, job, async_session)
    logger.info("risk_job_scheduled", **job.model_dump())
    return RiskJobAccepted(status="accepted", job=job)


@router.get("/health", tags=["health"])
async def health():
    return {"status": "ok", "service": "ledger-risk-engine"}


@router.get(
    "/{entity_type}/{entity_id}/trend",
    response_model=RiskTrend,
    summary="Score history and trend direction for a document or client company",
)
async def get_trend(
    entity_type: EntityType,
    entity_id: str,
    days: int = Query(DEFAULT_TREND_DAYS, ge=1, le=3650),
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> RiskTrend:
    return await RiskTrendService(ScoreStore(db)).get_risk_trend(tenant_id, entity_type, entity_id, days)
