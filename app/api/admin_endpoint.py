"""
Admin API — rule catalog CRUD for the caller's tenant.

Endpoints:
  GET    /v1/admin/rules             → global + tenant rules (inactive included)
  POST   /v1/admin/rules             → create a tenant rule / override
  PUT    /v1/admin/rules/{rule_id}   → update a tenant rule
  DELETE /v1/admin/rules/{rule_id}   → delete a tenant rule

Global rules are read-only here; a tenant overrides one by creating a rule
with the same code. All changes are audit-logged.
"""
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_tenant_id, require_rule_admin
from app.models.database import get_db
from app.schemas.risk import RiskRule, RiskRuleCreate, RiskRuleUpdate, RuleScope
from app.services.rule_catalog import RuleCatalog

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.get("/rules", response_model=list[RiskRule])
async def list_rules(
    scope: Optional[RuleScope] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    return await RuleCatalog(db).list_rules(tenant_id, scope)


@router.post("/rules", response_model=RiskRule, status_code=201)
async def create_rule(
    data: RiskRuleCreate,
    tenant_id: str = Depends(get_tenant_id),
    token: dict = Depends(require_rule_admin),
    db: AsyncSession = Depends(get_db),
):
    rule = await RuleCatalog(db).create_rule(tenant_id, data)
    logger.info("rule_audit", action="CREATED", rule_id=rule.id, code=rule.code,
                tenant_id=tenant_id, changed_by=token.get("sub", "unknown"))
    return rule


@router.put("/rules/{rule_id}", response_model=RiskRule)
async def update_rule(
    rule_id: str,
    update: RiskRuleUpdate,
    tenant_id: str = Depends(get_tenant_id),
    token: dict = Depends(require_rule_admin),
    db: AsyncSession = Depends(get_db),
):
    rule = await RuleCatalog(db).update_rule(tenant_id, rule_id, update)
    logger.info("rule_audit", action="UPDATED", rule_id=rule_id, code=rule.code, tenant_id=tenant_id,
                fields=sorted(update.model_dump(exclude_none=True)), changed_by=token.get("sub", "unknown"))
    return rule


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(
    rule_id: str,
    tenant_id: str = Depends(get_tenant_id),
    token: dict = Depends(require_rule_admin),
    db: AsyncSession = Depends(get_db),
):
    await RuleCatalog(db).delete_rule(tenant_id, rule_id)
    logger.info("rule_audit", action="DELETED", rule_id=rule_id, tenant_id=tenant_id,
                changed_by=token.get("sub", "unknown"))
    return Response(status_code=204)
