"""统一的会话与账本数据模型。

本模块定义了编排层各组件之间共享的标准数据结构：

- Message: 会话中的一条消息（user/assistant），创建后不可修改。
- ChatMessage: 发给推理 Provider 的消息（额外允许 system 角色）。
- LedgerAccount: 计算市场账本账户的一次读取结果。
- Provider / ServiceMetadata: 推理服务提供方及其端点信息。
- AgentProfile: NFT 代理的人设信息。
- ChainReceipt: 链上交易回执。

账本与 Provider 的权威状态都在外部市场，这里只保存瞬时读取结果。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4


# 会话中允许出现的角色；system 只出现在发给 Provider 的请求里
Role = Literal["user", "assistant"]
RequestRole = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Message:
    """一条会话消息，只追加不修改，插入顺序即对话顺序。"""

    id: str
    role: Role
    content: str
    timestamp: datetime

    @classmethod
    def create(cls, role: Role, content: str) -> "Message":
        return cls(
            id=f"m-{uuid4().hex}",
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc),
        )


@dataclass
class ChatMessage:
    """发往 chat/completions 端点的一条消息。"""

    role: RequestRole
    content: str

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class LedgerAccount:
    """账本账户的读取结果。

    - owner_wallet: 服务钱包地址。
    - total_balance: 定点金额（单位为市场原生代币）。
    - exists: 账户是否已创建。
    """

    owner_wallet: str
    total_balance: Decimal = Decimal("0")
    exists: bool = False


@dataclass
class Provider:
    """推理服务提供方。acknowledged 只会从 False 变为 True。"""

    address: str
    acknowledged: bool = False


@dataclass(frozen=True)
class ServiceMetadata:
    endpoint: str
    model: str


@dataclass(frozen=True)
class ChainReceipt:
    tx_hash: str
    block_number: Optional[int] = None


DEFAULT_PERSONALITY = "Gentle and lovely AI agent"
FEATURED_PERSONALITY = "Mysterious and charming, speaks with subtle hints"


@dataclass
class AgentProfile:
    """NFT 代理人设。personality 为空时按 token_id 取默认人设。"""

    token_id: str
    name: str
    personality: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def resolved_personality(self, default: str = DEFAULT_PERSONALITY) -> str:
        if self.personality:
            return self.personality
        if self.token_id == "1":
            return FEATURED_PERSONALITY
        return default


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"


@dataclass
class ChatSession:
    """一次付费会话，仅存在于内存中，视图关闭即丢弃。"""

    token_id: str
    user_address: str
    started: bool = False
    messages: List[Message] = field(default_factory=list)


class FallbackCategory(str, Enum):
    """兜底回复的分类标签，仅用于选择回复池。"""

    GREETINGS = "greetings"
    DAILY = "daily"
    EMOTIONS = "emotions"
    QUESTIONS = "questions"
    COMPLIMENTS = "compliments"
    ACTIVITIES = "activities"
    CARE = "care"
    PLAYFUL = "playful"
    ROMANTIC = "romantic"
    GENERAL = "general"
