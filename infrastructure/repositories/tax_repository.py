"""
税率规则仓储实现
"""
from typing import List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.tax.entity import TaxRule
from domain.tax.repository import TaxRuleRepository
from infrastructure.models.tax import TaxRuleModel


class SQLAlchemyTaxRuleRepository(TaxRuleRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TaxRuleModel) -> TaxRule:
        return TaxRule(
            id=model.id,
            name=model.name,
            country=model.country,
            state=model.state or "",
            rate=model.rate,
            tax_type=model.tax_type,
            is_inclusive=model.is_inclusive,
            priority=model.priority,
            active=model.active,
        )

    async def list_matching(self, country: str, state: str) -> List[TaxRule]:
        conditions = [TaxRuleModel.state == "", TaxRuleModel.state.is_(None)]
        if state:
            conditions.append(TaxRuleModel.state == state)
        result = await self.session.execute(
            select(TaxRuleModel)
            .where(
                TaxRuleModel.active.is_(True),
                TaxRuleModel.country == country,
                or_(*conditions),
            )
            .order_by(TaxRuleModel.priority.desc(), TaxRuleModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def create(self, rule: TaxRule) -> TaxRule:
        model = TaxRuleModel(
            name=rule.name,
            country=rule.country,
            state=rule.state,
            rate=rule.rate,
            tax_type=rule.tax_type,
            is_inclusive=rule.is_inclusive,
            priority=rule.priority,
            active=rule.active,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)
