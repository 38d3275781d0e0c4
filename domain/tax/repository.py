"""税率规则仓储接口"""
from abc import ABC, abstractmethod
from typing import List

from .entity import TaxRule


class TaxRuleRepository(ABC):

    @abstractmethod
    async def list_matching(self, country: str, state: str) -> List[TaxRule]:
        """返回生效且匹配国家、（州相同或规则未限定州）的规则，
        按 priority 降序、id 升序排列。"""
        pass

    @abstractmethod
    async def create(self, rule: TaxRule) -> TaxRule:
        pass
