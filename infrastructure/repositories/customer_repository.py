"""
客户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import CustomerNotFoundException
from domain.customer.entity import Customer
from domain.customer.repository import CustomerRepository
from infrastructure.models.customer import CustomerModel


class SQLAlchemyCustomerRepository(CustomerRepository):
    """客户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CustomerModel) -> Customer:
        return Customer(
            id=model.id,
            email=model.email,
            first_name=model.first_name,
            last_name=model.last_name,
            country=model.country,
            state=model.state,
            currency=model.currency,
            credit=model.credit,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, customer: Customer) -> Customer:
        model = CustomerModel(
            email=customer.email,
            first_name=customer.first_name,
            last_name=customer.last_name,
            country=customer.country,
            state=customer.state,
            currency=customer.currency,
            credit=customer.credit,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, customer_id: int, *, for_update: bool = False) -> Optional[Customer]:
        stmt = select(CustomerModel).where(CustomerModel.id == customer_id)
        if for_update:
            # 行锁串行化同一客户的余额变更
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update_credit(self, customer: Customer) -> Customer:
        model = await self.session.get(CustomerModel, customer.id)
        if model is None:
            raise CustomerNotFoundException(customer.id)
        model.credit = customer.credit
        await self.session.flush()
        return self._to_entity(model)
