"""推理请求分发。

接口风格与 OpenAI 兼容，使用 chat/completions 端点：
- URL: {endpoint}/chat/completions（endpoint 来自市场的服务元数据）
- 认证: 市场签发的请求头（携带支付/鉴权证明，内容不透明）

每次 infer 只发起一次 HTTP 调用，本身不重试；重试与兜底由会话层负责。
"""

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from companion_core.config.settings import settings
from companion_core.domain.exceptions import (
    BadRequestError,
    HandshakeError,
    InferTimeoutError,
    LedgerError,
    MalformedResponseError,
    NetworkError,
    ProviderUnavailableError,
    UnrecoverableError,
)
from companion_core.domain.models import ChatMessage, Message, ServiceMetadata
from companion_core.infrastructure.logging.logger import log_event
from companion_core.orchestration.handshake import ProviderHandshake
from companion_core.providers.base import MarketplaceCollaborator


class InferenceDispatcher:
    def __init__(
        self,
        marketplace: MarketplaceCollaborator,
        handshake: ProviderHandshake,
        cfg=settings,
    ):
        self._marketplace = marketplace
        self._handshake = handshake
        self._settings = cfg

    async def infer(
        self,
        wallet: str,
        provider_address: str,
        system_prompt: str,
        history: Sequence[Message],
        last_user_message: Optional[Message] = None,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> str:
        """执行一次付费推理调用，返回助手回复文本。

        Raises:
            BadRequestError: 历史消息末尾不是用户消息（不会发起任何调用）
            UnrecoverableError: 账户/握手/元数据/签名阶段失败
            InferTimeoutError: 请求超时
            NetworkError: 连接失败等传输层错误
            ProviderUnavailableError: Provider 返回非 2xx
            MalformedResponseError: 响应结构无法解析
        """
        log_ctx = dict(log_ctx or {})
        log_ctx.setdefault("provider", provider_address)

        if not history or history[-1].role != "user":
            raise BadRequestError("A trailing user message is required", provider=provider_address)
        last_user_message = last_user_message or history[-1]

        try:
            await self._handshake.ensure_funded(wallet)
        except LedgerError as exc:
            raise UnrecoverableError(exc.message, stage="ledger", cause_code=exc.code) from exc

        try:
            await self._handshake.ensure_acknowledged(wallet, provider_address)
        except (HandshakeError, LedgerError) as exc:
            raise UnrecoverableError(exc.message, stage="handshake", cause_code=exc.code) from exc

        metadata = await self._resolve_metadata(provider_address)
        headers = await self._sign_headers(provider_address, last_user_message.content)

        messages = [ChatMessage(role="system", content=system_prompt)]
        messages.extend(ChatMessage(role=m.role, content=m.content) for m in history)
        payload = self._build_payload(messages, metadata)

        log_event(
            logging.INFO,
            "Calling provider",
            log_ctx,
            endpoint=metadata.endpoint,
            model=metadata.model,
            message_count=len(messages),
        )
        data = await self._post(metadata, payload, headers, log_ctx)
        return self._parse_response(data)

    # ---- 辅助方法 ----

    async def _resolve_metadata(self, provider_address: str) -> ServiceMetadata:
        try:
            return await self._marketplace.get_service_metadata(provider_address)
        except Exception as exc:
            raise UnrecoverableError(
                f"Failed to resolve service metadata: {exc}",
                stage="metadata",
                provider=provider_address,
            ) from exc

    async def _sign_headers(self, provider_address: str, content: str) -> Dict[str, str]:
        try:
            return dict(await self._marketplace.sign_request_headers(provider_address, content))
        except Exception as exc:
            raise UnrecoverableError(
                f"Failed to sign request headers: {exc}",
                stage="sign",
                provider=provider_address,
            ) from exc

    def _build_payload(self, messages: Sequence[ChatMessage], metadata: ServiceMetadata) -> dict:
        return {
            "messages": [m.to_payload() for m in messages],
            "model": metadata.model,
            "temperature": getattr(self._settings, "inference_temperature", 0.8),
            "max_tokens": getattr(self._settings, "inference_max_tokens", 500),
        }

    async def _post(
        self,
        metadata: ServiceMetadata,
        payload: dict,
        signed_headers: Dict[str, str],
        log_ctx: Dict[str, Any],
    ) -> Any:
        url = f"{metadata.endpoint.rstrip('/')}/chat/completions"
        headers = {"Content-Type": "application/json", **signed_headers}
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            log_event(logging.WARNING, "Provider request timed out", log_ctx, timeout=self._settings.http_timeout)
            raise InferTimeoutError(f"Provider did not respond within {self._settings.http_timeout}s") from e
        except httpx.RequestError as e:
            log_event(logging.WARNING, "Provider request failed", log_ctx, error=str(e))
            raise NetworkError(str(e)) from e

        if resp.status_code >= 400:
            log_event(logging.ERROR, "Provider API error", log_ctx, http_status=resp.status_code, body=resp.text[:500])
            raise ProviderUnavailableError(
                "AI service temporarily unavailable",
                provider_status=resp.status_code,
                body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError("Provider returned a non-JSON body", body=resp.text[:500]) from e

    @staticmethod
    def _parse_response(data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("Response has no choices[0].message.content") from e
        if not isinstance(content, str):
            raise MalformedResponseError("Response content is not text")
        return content
