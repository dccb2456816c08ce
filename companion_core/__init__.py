"""Companion Core 顶层包。

该包提供 NFT AI 代理付费聊天的推理会话编排实现，
包括配置加载、领域模型、账本引导、Provider 握手、
签名请求分发、兜底回复引擎与会话控制器等能力。
"""

from companion_core.agents.chat_session import ChatSessionController
from companion_core.api.service import create_session
from companion_core.fallback.responses import FallbackResponseEngine

__all__ = ["ChatSessionController", "FallbackResponseEngine", "create_session"]
