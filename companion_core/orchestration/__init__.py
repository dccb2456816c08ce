"""推理会话编排层。

调用链：InferenceDispatcher -> ProviderHandshake -> LedgerBootstrap。
"""

from companion_core.orchestration.dispatcher import InferenceDispatcher
from companion_core.orchestration.handshake import ProviderHandshake
from companion_core.orchestration.ledger import LedgerBootstrap

__all__ = ["InferenceDispatcher", "ProviderHandshake", "LedgerBootstrap"]
