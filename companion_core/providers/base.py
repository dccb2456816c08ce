"""外部协作方协议。

编排层不直接依赖计算市场 SDK 或链上合约实现，而是依赖以下协议：

- LedgerCollaborator: 账本账户读取、创建与充值。
- MarketplaceCollaborator: Provider 确认、服务元数据、请求头签名。
- ChainCollaborator: 链上开启付费会话。

这样可以在不改编排代码的前提下接入不同的市场 SDK，测试中也可以直接用假实现替换。
所有方法都是协程，失败时直接抛出异常（异常文本可能包含 "Account does not exist"）。
"""

from decimal import Decimal
from typing import Dict, Protocol

from companion_core.domain.models import ChainReceipt, LedgerAccount, ServiceMetadata


class LedgerCollaborator(Protocol):
    """计算市场账本。"""

    async def get_account(self, wallet: str) -> LedgerAccount:
        ...

    async def create_account(self, wallet: str, initial_amount: Decimal) -> None:
        ...

    async def deposit(self, wallet: str, amount: Decimal) -> None:
        ...


class MarketplaceCollaborator(Protocol):
    """计算市场推理相关接口。"""

    async def acknowledge_provider(self, wallet: str, provider_address: str) -> None:
        ...

    async def get_service_metadata(self, provider_address: str) -> ServiceMetadata:
        ...

    async def sign_request_headers(self, provider_address: str, content: str) -> Dict[str, str]:
        """返回带支付/鉴权证明的请求头，内容对编排层不透明。"""

        ...


class ChainCollaborator(Protocol):
    """链上合约：支付固定费用后开启会话。"""

    async def start_chat_session(self, token_id: str) -> ChainReceipt:
        ...
