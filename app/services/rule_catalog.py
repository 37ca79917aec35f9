"""
Rule catalog: global rules (tenant_id IS NULL) merged with tenant overrides.

A tenant rule replaces the global rule with the same code, including when the
tenant rule is inactive; that is how a tenant switches a global rule off.
"""
from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, RuleConfigError
from app.models.risk import RiskRuleRow
from app.schemas.risk import RiskRule, RiskRuleCreate, RiskRuleUpdate, RuleScope

logger = structlog.get_logger()


def rule_from_row(row: RiskRuleRow) -> RiskRule:
    try:
        return RiskRule(
            id=row.id,
            tenant_id=row.tenant_id,
            code=row.code,
            scope=row.scope,
            weight=row.weight,
            default_severity=row.default_severity,
            active=row.is_active,
            description=row.description,
            config=row.config,
        )
    except ValidationError as e:
        raise RuleConfigError(row.code, str(e)) from e


def merge_rules(global_rules: Iterable[RiskRule], tenant_rules: Iterable[RiskRule]) -> list[RiskRule]:
    """Tenant rules win by code; only active rules survive; sorted by code."""
    merged = {r.code: r for r in global_rules}
    merged.update({r.code: r for r in tenant_rules})
    return sorted((r for r in merged.values() if r.active), key=lambda r: r.code)


def partition(rules: Iterable[RiskRule]) -> dict[RuleScope, list[RiskRule]]:
    by_scope: dict[RuleScope, list[RiskRule]] = defaultdict(list)
    for rule in rules:
        by_scope[rule.scope].append(rule)
    return dict(by_scope)


class RuleCatalog:

    partition = staticmethod(partition)

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _rows(self, tenant_id: str, scope: Optional[RuleScope] = None) -> list[RiskRuleRow]:
        stmt = select(RiskRuleRow).where(
            or_(RiskRuleRow.tenant_id.is_(None), RiskRuleRow.tenant_id == tenant_id)
        )
        if scope is not None:
            stmt = stmt.where(RiskRuleRow.scope == RuleScope(scope).value)
        return list((await self.session.execute(stmt)).scalars().all())

    async def load_active_rules(self, tenant_id: str, scope: Optional[RuleScope] = None) -> list[RiskRule]:
        rules = [rule_from_row(row) for row in await self._rows(tenant_id, scope)]
        return merge_rules(
            (r for r in rules if r.tenant_id is None),
            (r for r in rules if r.tenant_id == tenant_id),
        )

    # ═══════════════════════════════════════════════════════════════
    # Administration (tenant-scoped; global rules are read-only here)
    # ═══════════════════════════════════════════════════════════════

    async def list_rules(self, tenant_id: str, scope: Optional[RuleScope] = None) -> list[RiskRule]:
        """Every rule visible to the tenant, inactive ones included."""
        rows = sorted(await self._rows(tenant_id, scope), key=lambda r: (r.code, r.tenant_id is not None))
        return [rule_from_row(row) for row in rows]

    async def _tenant_row(self, tenant_id: str, rule_id: str) -> RiskRuleRow:
        stmt = select(RiskRuleRow).where(RiskRuleRow.id == rule_id, RiskRuleRow.tenant_id == tenant_id)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Risk rule", rule_id)
        return row

    async def create_rule(self, tenant_id: str, data: RiskRuleCreate) -> RiskRule:
        existing = await self.session.execute(
            select(RiskRuleRow.id).where(RiskRuleRow.tenant_id == tenant_id, RiskRuleRow.code == data.code)
        )
        if existing.first() is not None:
            raise RuleConfigError(data.code, "rule code already defined for this tenant")

        row = RiskRuleRow(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            scope=data.scope.value,
            code=data.code,
            description=data.description,
            weight=data.weight,
            is_active=data.active,
            default_severity=data.default_severity.value,
            config=data.config,
        )
        rule = rule_from_row(row)
        self.session.add(row)
        await self.session.commit()
        logger.info("risk_rule_created", tenant_id=tenant_id, code=rule.code, rule_id=rule.id)
        return rule

    async def update_rule(self, tenant_id: str, rule_id: str, data: RiskRuleUpdate) -> RiskRule:
        row = await self._tenant_row(tenant_id, rule_id)
        updates = data.model_dump(exclude_none=True)

        if "weight" in updates:
            row.weight = updates["weight"]
        if "default_severity" in updates:
            row.default_severity = data.default_severity.value
        if "active" in updates:
            row.is_active = updates["active"]
        if "description" in updates:
            row.description = updates["description"]
        if "config" in updates:
            row.config = updates["config"]
        row.updated_at = datetime.now(timezone.utc)

        rule = rule_from_row(row)
        await self.session.commit()
        logger.info("risk_rule_updated", tenant_id=tenant_id, code=rule.code, fields=sorted(updates))
        return rule

    async def delete_rule(self, tenant_id: str, rule_id: str) -> None:
        row = await self._tenant_row(tenant_id, rule_id)
        code = row.code
        await self.session.delete(row)
        await self.session.commit()
        logger.info("risk_rule_deleted", tenant_id=tenant_id, code=code, rule_id=rule_id)
