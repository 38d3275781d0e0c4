"""产品目录仓储接口"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import ConfigOption, Product, ProductPricing


class CatalogRepository(ABC):

    @abstractmethod
    async def get_product(self, product_id: int) -> Optional[Product]:
        pass

    @abstractmethod
    async def get_pricing(self, product_id: int, currency: str) -> Optional[ProductPricing]:
        """按产品 + 币种获取定价行"""
        pass

    @abstractmethod
    async def list_config_options(self, product_id: int) -> List[ConfigOption]:
        """获取产品的可配置选项（含子选项）"""
        pass
