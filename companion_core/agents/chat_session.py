"""会话控制器。

对 UI 层暴露的顶层状态机：NOT_STARTED -> ACTIVE（视图生命周期内终态）。

- start(): 链上支付开启会话，成功后才允许发送消息。
- send_message(): 追加用户消息、调用推理、追加助手回复。
  推理任一阶段失败都以兜底回复代替，并记录诊断日志，保证一问一答。
"""

import asyncio
import logging
import random
import time
from typing import Optional, Tuple
from uuid import uuid4

from companion_core.config.settings import settings
from companion_core.domain.exceptions import SessionStartError, is_transport_failure
from companion_core.domain.models import (
    AgentProfile,
    ChainReceipt,
    ChatSession,
    Message,
    SessionState,
)
from companion_core.fallback.responses import FallbackResponseEngine
from companion_core.infrastructure.logging.logger import log_event
from companion_core.orchestration.dispatcher import InferenceDispatcher
from companion_core.prompts import load_system_prompt, welcome_message
from companion_core.providers.base import ChainCollaborator


class ChatSessionController:
    def __init__(
        self,
        agent: AgentProfile,
        user_address: str,
        service_wallet: str,
        provider_address: str,
        dispatcher: InferenceDispatcher,
        chain: ChainCollaborator,
        fallback: Optional[FallbackResponseEngine] = None,
        cfg=settings,
        rng: Optional[random.Random] = None,
    ):
        self._agent = agent
        self._service_wallet = service_wallet
        self._provider_address = provider_address
        self._dispatcher = dispatcher
        self._chain = chain
        self._settings = cfg
        self._rng = rng or random.Random()
        self._fallback = fallback or FallbackResponseEngine(rng=self._rng)
        self._session = ChatSession(token_id=agent.token_id, user_address=user_address)
        self._state = SessionState.NOT_STARTED
        self._lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._personality = agent.resolved_personality(
            getattr(cfg, "default_personality", None) or "Gentle and lovely AI agent"
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> ChatSession:
        return self._session

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._session.messages)

    @property
    def system_prompt(self) -> str:
        return load_system_prompt(self._agent.name, self._personality)

    async def start(self) -> Optional[ChainReceipt]:
        """支付链上费用开启会话。

        已开启时为空操作并返回 None；并发调用只会发起一笔链上交易。

        Raises:
            SessionStartError: 链上交易失败，此错误直接暴露给调用方
        """
        async with self._start_lock:
            if self._state is SessionState.ACTIVE:
                return None
            return await self._start()

    async def _start(self) -> ChainReceipt:
        log_ctx = {"token_id": self._agent.token_id, "user": self._session.user_address}
        try:
            receipt = await self._chain.start_chat_session(self._agent.token_id)
        except SessionStartError:
            log_event(logging.ERROR, "Chat session start failed", log_ctx)
            raise
        except Exception as exc:
            log_event(logging.ERROR, "Chat session start failed", log_ctx, error=str(exc))
            raise SessionStartError(f"Failed to start chat: {exc}", token_id=self._agent.token_id) from exc

        self._state = SessionState.ACTIVE
        self._session.started = True
        log_event(
            logging.INFO,
            "Chat session started",
            log_ctx,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
        )
        if getattr(self._settings, "session_welcome_message", False):
            content = welcome_message(self._agent.name, self._personality, self._rng)
            self._session.messages.append(Message.create("assistant", content))
        return receipt

    async def send_message(self, content: str) -> Optional[Message]:
        """发送一条用户消息并返回追加的助手消息。

        会话未开启或消息为空时为空操作，返回 None。
        并发调用按到达顺序排队执行。
        """
        text = (content or "").strip()
        if not text:
            return None
        if self._state is not SessionState.ACTIVE:
            log_event(logging.WARNING, "Message ignored, session not started", {"token_id": self._agent.token_id})
            return None

        async with self._lock:
            return await self._exchange(text)

    async def _exchange(self, text: str) -> Message:
        start_time = time.time()
        log_ctx = {
            "trace_id": f"tr-{uuid4().hex}",
            "token_id": self._agent.token_id,
            "user": self._session.user_address,
        }

        user_msg = Message.create("user", text)
        self._session.messages.append(user_msg)

        fallback_used = False
        try:
            reply = await self._dispatcher.infer(
                self._service_wallet,
                self._provider_address,
                self.system_prompt,
                tuple(self._session.messages),
                user_msg,
                log_ctx=log_ctx,
            )
        except Exception as exc:
            fallback_used = True
            reply = self._fallback_reply(exc, text)
            log_event(
                logging.WARNING,
                "Inference failed, using fallback reply",
                log_ctx,
                error_type=type(exc).__name__,
                error_code=getattr(exc, "code", None),
                error=str(exc),
            )

        assistant_msg = Message.create("assistant", reply)
        self._session.messages.append(assistant_msg)
        log_event(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            user_message_id=user_msg.id,
            assistant_message_id=assistant_msg.id,
            fallback=fallback_used,
        )
        return assistant_msg

    def _fallback_reply(self, exc: Exception, text: str) -> str:
        if is_transport_failure(exc):
            return self._fallback.error_response()
        return self._fallback.respond(text, self._agent.name)
