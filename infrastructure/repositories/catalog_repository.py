"""
产品目录仓储实现
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.catalog.entity import (
    ConfigOption,
    ConfigSubOption,
    CyclePrices,
    Product,
    ProductPricing,
)
from domain.catalog.repository import CatalogRepository
from infrastructure.models.catalog import (
    ConfigOptionModel,
    ConfigSubOptionModel,
    ProductModel,
    ProductPricingModel,
)


def _prices(model) -> CyclePrices:
    return CyclePrices(
        monthly=model.monthly,
        quarterly=model.quarterly,
        semi_annually=model.semi_annually,
        annually=model.annually,
        biennially=model.biennially,
        triennially=model.triennially,
    )


class SQLAlchemyCatalogRepository(CatalogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Optional[Product]:
        model = await self.session.get(ProductModel, product_id)
        if model is None:
            return None
        return Product(
            id=model.id,
            name=model.name,
            product_type=model.product_type,
            active=model.active,
            description=model.description,
        )

    async def get_pricing(self, product_id: int, currency: str) -> Optional[ProductPricing]:
        result = await self.session.execute(
            select(ProductPricingModel).where(
                ProductPricingModel.product_id == product_id,
                ProductPricingModel.currency == currency.upper(),
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return ProductPricing(
            id=model.id,
            product_id=model.product_id,
            currency=model.currency,
            setup_fee=model.setup_fee,
            prices=_prices(model),
        )

    async def list_config_options(self, product_id: int) -> List[ConfigOption]:
        options_result = await self.session.execute(
            select(ConfigOptionModel)
            .where(ConfigOptionModel.product_id == product_id)
            .order_by(ConfigOptionModel.sort_order, ConfigOptionModel.id)
        )
        options = {
            m.id: ConfigOption(id=m.id, product_id=m.product_id, name=m.name)
            for m in options_result.scalars().all()
        }
        if not options:
            return []
        subs_result = await self.session.execute(
            select(ConfigSubOptionModel)
            .where(ConfigSubOptionModel.option_id.in_(list(options)))
            .order_by(ConfigSubOptionModel.sort_order, ConfigSubOptionModel.id)
        )
        for sub in subs_result.scalars().all():
            options[sub.option_id].sub_options.append(
                ConfigSubOption(
                    id=sub.id,
                    option_id=sub.option_id,
                    name=sub.name,
                    setup_fee=sub.setup_fee,
                    prices=_prices(sub),
                )
            )
        return list(options.values())
