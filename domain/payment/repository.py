"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录；同一预约已有进行中/已完成支付时抛出 ConflictException"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_by_provider_ref(self, provider: str, provider_ref: str) -> Optional[Payment]:
        """根据支付渠道交易ID获取支付"""
        pass

    @abstractmethod
    async def find_active_for_booking(self, booking_id: str) -> Optional[Payment]:
        """预约下 pending/processing/completed 的支付（至多一笔）"""
        pass

    @abstractmethod
    async def list_by_booking(self, booking_id: str) -> List[Payment]:
        pass

    @abstractmethod
    async def list_stale(
        self,
        statuses: List[PaymentStatus],
        updated_before: datetime,
        limit: int = 100,
    ) -> List[Payment]:
        """updated_at 早于阈值的指定状态支付"""
        pass

    @abstractmethod
    async def list_stale_refunds(self, updated_before: datetime, limit: int = 100) -> List[Payment]:
        """退款仍为 pending 且 updated_at 早于阈值的支付"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """按版本号更新；版本不匹配时抛出 StalePaymentError"""
        pass
