"""对外 API 服务模块。

提供简化的函数接口供上层应用（UI / Web 路由）调用：
按配置组装 LedgerBootstrap -> ProviderHandshake -> InferenceDispatcher，
再为每个 (代理, 用户) 创建一个 ChatSessionController。
"""

import random
from typing import Any, Dict, List, Optional

from eth_account import Account

from companion_core.agents.chat_session import ChatSessionController
from companion_core.chain.contract import AgentChatContract
from companion_core.config.settings import settings
from companion_core.domain.exceptions import ValidationError
from companion_core.domain.models import AgentProfile, Message
from companion_core.infrastructure.logging.logger import logger
from companion_core.orchestration.dispatcher import InferenceDispatcher
from companion_core.orchestration.handshake import ProviderHandshake
from companion_core.orchestration.ledger import LedgerBootstrap
from companion_core.providers.base import ChainCollaborator, LedgerCollaborator, MarketplaceCollaborator
from companion_core.providers.registry import ProviderRegistry


_dispatcher: Optional[InferenceDispatcher] = None
_collaborators: Optional[tuple] = None


def build_dispatcher(ledger: LedgerCollaborator, marketplace: MarketplaceCollaborator, cfg=settings) -> InferenceDispatcher:
    bootstrap = LedgerBootstrap(ledger, initial_amount=cfg.ledger_initial_amount)
    handshake = ProviderHandshake(
        marketplace,
        bootstrap,
        minimum_balance=cfg.ledger_minimum_balance,
        top_up_amount=cfg.ledger_top_up_amount,
    )
    return InferenceDispatcher(marketplace, handshake, cfg)


def get_default_dispatcher(ledger: LedgerCollaborator, marketplace: MarketplaceCollaborator) -> InferenceDispatcher:
    """获取进程级共享的 InferenceDispatcher（单例）。

    Provider 确认缓存与账本锁都挂在这个实例上，同一进程内的所有会话共用。
    传入不同的协作方实例时重新构建。
    """
    global _dispatcher, _collaborators
    if _dispatcher is None or _collaborators != (id(ledger), id(marketplace)):
        _dispatcher = build_dispatcher(ledger, marketplace, settings)
        _collaborators = (id(ledger), id(marketplace))
    return _dispatcher


def service_wallet_address(cfg=settings) -> str:
    if not getattr(cfg, "private_key", None):
        raise ValidationError(
            code="MISSING_PRIVATE_KEY",
            message="Server private key not configured, cannot use AI functionality",
            http_status=500,
        )
    return Account.from_key(cfg.private_key).address


def create_session(
    agent: AgentProfile,
    user_address: str,
    ledger: LedgerCollaborator,
    marketplace: MarketplaceCollaborator,
    chain: Optional[ChainCollaborator] = None,
    *,
    model: Optional[str] = None,
    registry: Optional[ProviderRegistry] = None,
    dispatcher: Optional[InferenceDispatcher] = None,
    service_wallet: Optional[str] = None,
    cfg=settings,
    rng: Optional[random.Random] = None,
) -> ChatSessionController:
    """为一个代理和用户创建会话控制器。

    Args:
        agent: 代理人设
        user_address: 用户钱包地址
        ledger / marketplace: 计算市场协作方
        chain: 链上协作方（可选，不提供则按配置创建 AgentChatContract）
        model: 模型名（可选，默认取配置中的 default_model）
        registry: 模型名 -> Provider 地址表（可选，默认取配置）
        dispatcher: 推理分发器（可选，默认使用进程级共享实例）
        service_wallet: 为推理付费的服务钱包地址（可选，默认由私钥推导）

    Raises:
        ValidationError: 私钥缺失或模型未知
    """
    registry = registry or ProviderRegistry.from_settings(cfg)
    provider_address = registry.resolve(model)
    wallet = service_wallet or service_wallet_address(cfg)
    if dispatcher is None:
        dispatcher = build_dispatcher(ledger, marketplace, cfg) if cfg is not settings else get_default_dispatcher(ledger, marketplace)
    if chain is None:
        chain = AgentChatContract(cfg.private_key, cfg.contract_address, cfg.rpc_url, cfg.chain_timeout)

    logger.info(
        "Created chat session",
        extra={"extra": {"token_id": agent.token_id, "user": user_address, "provider": provider_address}},
    )
    return ChatSessionController(
        agent=agent,
        user_address=user_address,
        service_wallet=wallet,
        provider_address=provider_address,
        dispatcher=dispatcher,
        chain=chain,
        cfg=cfg,
        rng=rng,
    )


def message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "timestamp": message.timestamp.isoformat(),
    }


def get_session_messages(controller: ChatSessionController) -> List[Dict[str, Any]]:
    """获取会话的所有消息（按对话顺序）。"""

    return [message_to_dict(m) for m in controller.messages]
