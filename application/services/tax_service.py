"""税费应用服务 - 按客户地区或指定地区计算税额"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.exceptions import CustomerNotFoundException
from domain.common.money import ZERO, to_decimal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.customer.repository import CustomerRepository
from domain.tax.calculator import TaxBreakdown, compute_tax, normalize_region
from domain.tax.repository import TaxRuleRepository

logger = get_logger(__name__)


class TaxCalculator:
    """
    绑定到某个工作单元仓储的税费计算器

    可在下单等写事务内复用同一会话计算税额。
    """

    def __init__(self, customer_repository: CustomerRepository, tax_rule_repository: TaxRuleRepository):
        self.customer_repository = customer_repository
        self.tax_rule_repository = tax_rule_repository

    async def for_region(self, country: Optional[str], state: Optional[str], amount: Decimal) -> TaxBreakdown:
        amount = to_decimal(amount)
        country, state = normalize_region(country, state)
        if amount <= ZERO or not country:
            return TaxBreakdown(amount=amount)
        rules = await self.tax_rule_repository.list_matching(country, state)
        return compute_tax(amount, rules)

    async def for_customer(self, customer_id: int, amount: Decimal) -> TaxBreakdown:
        amount = to_decimal(amount)
        if amount <= ZERO:
            return TaxBreakdown(amount=amount)
        customer = await self.customer_repository.get_by_id(customer_id)
        if customer is None:
            raise CustomerNotFoundException(customer_id)
        return await self.for_region(customer.country, customer.state, amount)


class TaxService:

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def calculate_for_customer(self, customer_id: int, amount: Decimal) -> Decimal:
        async with self._uow_factory(readonly=True) as uow:
            breakdown = await TaxCalculator(uow.customer_repository, uow.tax_rule_repository).for_customer(
                customer_id, amount
            )
        logger.debug("tax_calculated", customer_id=customer_id, amount=str(amount), tax=str(breakdown.tax))
        return breakdown.tax

    async def calculate_for_region(self, country: str, state: Optional[str], amount: Decimal) -> TaxBreakdown:
        async with self._uow_factory(readonly=True) as uow:
            return await TaxCalculator(uow.customer_repository, uow.tax_rule_repository).for_region(
                country, state, amount
            )
