"""链上合约客户端。"""

from companion_core.chain.contract import AGENT_CHAT_ABI, AgentChatContract

__all__ = ["AgentChatContract", "AGENT_CHAT_ABI"]
