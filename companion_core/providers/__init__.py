"""外部协作方集成层。

该包下的模块负责：
- 定义账本、计算市场、链上合约的协作方协议 (base)。
- 维护模型名与 Provider 地址的映射 (registry)。
"""

from companion_core.providers.base import ChainCollaborator, LedgerCollaborator, MarketplaceCollaborator
from companion_core.providers.registry import DEFAULT_MODEL, OFFICIAL_PROVIDERS, ProviderRegistry

__all__ = [
    "ChainCollaborator",
    "LedgerCollaborator",
    "MarketplaceCollaborator",
    "ProviderRegistry",
    "OFFICIAL_PROVIDERS",
    "DEFAULT_MODEL",
]
