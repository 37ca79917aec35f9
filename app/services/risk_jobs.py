"""
risk_jobs.py
────────────
Background risk calculation job.

Payload (app.schemas.jobs.RiskCalculationJob):
  {tenant_id, document_id?}         → one document
  {tenant_id, client_company_id?}   → one client company
  {tenant_id}                       → every active client company of the tenant

Retries and timeouts belong to the scheduler that enqueues the payload; this
module runs each evaluation exactly once. In tenant-wide mode each company
gets its own session, and a failing company is logged and skipped.

Usage:
  python -m app.services.risk_jobs --tenant T [--company C] [--document D]
  OR via the API: POST /v1/risk/jobs
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Union

import structlog

from app.schemas.jobs import RiskCalculationJob
from app.services.risk_evaluator import RiskRuleEngine, build_risk_engine

logger = structlog.get_logger(__name__)

EngineFactory = Callable[[Any], RiskRuleEngine]


async def process_risk_calculation_job(
    payload: Union[RiskCalculationJob, dict],
    session_factory,
    engine_factory: EngineFactory = build_risk_engine,
) -> dict:
    job = payload if isinstance(payload, RiskCalculationJob) else RiskCalculationJob.model_validate(payload)
    started_at = datetime.now(timezone.utc)
    logger.info(
        "risk_job_started",
        tenant_id=job.tenant_id,
        client_company_id=job.client_company_id,
        document_id=job.document_id,
    )

    evaluated: list[str] = []
    failed: list[str] = []

    if job.document_id:
        async with session_factory() as session:
            await engine_factory(session).evaluate_document(job.tenant_id, job.document_id)
        evaluated.append(job.document_id)

    elif job.client_company_id:
        async with session_factory() as session:
            await engine_factory(session).evaluate_client_company(job.tenant_id, job.client_company_id)
        evaluated.append(job.client_company_id)

    else:
        async with session_factory() as session:
            companies = await engine_factory(session).ledger.list_active_companies(job.tenant_id)

        for company in companies:
            try:
                async with session_factory() as session:
                    await engine_factory(session).evaluate_client_company(job.tenant_id, company.id)
                evaluated.append(company.id)
            except Exception as e:
                logger.error(
                    "risk_job_company_failed",
                    tenant_id=job.tenant_id,
                    client_company_id=company.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                failed.append(company.id)

    elapsed = (datetime.now(timezone.utc) - started_at).total_seconds()
    result = {
        "tenant_id":       job.tenant_id,
        "evaluated":       evaluated,
        "failed":          failed,
        "elapsed_seconds": round(elapsed, 2),
        "status":          "partial" if failed else "success",
    }
    logger.info("risk_job_complete", **result)
    return result


def _parse_args(argv: list[str]) -> RiskCalculationJob:
    parser = argparse.ArgumentParser(description="Run a risk calculation job")
    parser.add_argument("--tenant", required=True)
    parser.add_argument("--company", default=None)
    parser.add_argument("--document", default=None)
    args = parser.parse_args(argv)
    return RiskCalculationJob(tenant_id=args.tenant, client_company_id=args.company, document_id=args.document)


if __name__ == "__main__":
    from app.models.database import async_session

    job = _parse_args(sys.argv[1:])
    try:
        result = asyncio.run(process_risk_calculation_job(job, async_session))
        print(f"✓ Risk job {result['status']}: {len(result['evaluated'])} evaluated, "
              f"{len(result['failed'])} failed ({result['elapsed_seconds']}s)")
    except Exception as e:
        print(f"✗ Risk job failed: {e}", file=sys.stderr)
        sys.exit(1)
