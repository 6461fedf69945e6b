"""
发票仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .entity import Invoice


class InvoiceRepository(ABC):

    @abstractmethod
    async def create(self, invoice: Invoice) -> Invoice:
        """创建发票；同一支付重复开票时抛出 ConflictException"""
        pass

    @abstractmethod
    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_by_payment_id(self, payment_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def update(self, invoice: Invoice) -> Invoice:
        pass

    @abstractmethod
    async def next_invoice_number(self, now: datetime) -> str:
        """
        分配下一个发票号 (YYYYMM + 4 位序号)。

        必须在调用方事务内执行；并发调用不会得到相同号码。
        """
        pass
