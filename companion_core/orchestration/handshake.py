"""Provider 确认握手。

调用推理服务前，服务钱包必须先在市场里确认（acknowledge）目标 Provider。
若确认失败且错误被识别为“账户不存在”，执行且仅执行一次恢复：
充值后再确认一次。其他错误或第二次失败一律视为不可恢复。
ensure_funded 是每次推理前的常规检查，账户已充足时只读一次余额。

确认结果只缓存在当前进程内存中，冷启动会重新确认。
"""

import logging
from decimal import Decimal
from typing import Dict, Tuple

from companion_core.domain.exceptions import (
    HandshakeError,
    LedgerError,
    LedgerErrorClass,
    classify_ledger_error,
)
from companion_core.domain.models import LedgerAccount, Provider
from companion_core.infrastructure.logging.logger import log_event
from companion_core.orchestration.ledger import LedgerBootstrap
from companion_core.providers.base import MarketplaceCollaborator


class ProviderHandshake:
    def __init__(
        self,
        marketplace: MarketplaceCollaborator,
        bootstrap: LedgerBootstrap,
        minimum_balance: Decimal = Decimal("0.01"),
        top_up_amount: Decimal = Decimal("0.02"),
    ):
        self._marketplace = marketplace
        self._bootstrap = bootstrap
        self._minimum_balance = Decimal(minimum_balance)
        self._top_up_amount = Decimal(top_up_amount)
        self._providers: Dict[Tuple[str, str], Provider] = {}

    def is_acknowledged(self, wallet: str, provider_address: str) -> bool:
        provider = self._providers.get(self._key(wallet, provider_address))
        return bool(provider and provider.acknowledged)

    async def ensure_funded(self, wallet: str) -> LedgerAccount:
        """每次推理前的常规账本检查：缺失则创建，余额不足则充值。"""

        return await self._bootstrap.ensure_funded(wallet, self._minimum_balance, self._top_up_amount)

    async def ensure_acknowledged(self, wallet: str, provider_address: str) -> Provider:
        """确保 provider_address 已被 wallet 确认。

        Raises:
            HandshakeError: 非“账户不存在”错误，或充值恢复后仍失败
        """
        key = self._key(wallet, provider_address)
        provider = self._providers.setdefault(key, Provider(address=provider_address))
        if provider.acknowledged:
            return provider

        log_ctx = {"wallet": wallet, "provider": provider_address}
        try:
            await self._marketplace.acknowledge_provider(wallet, provider_address)
        except Exception as exc:
            if classify_ledger_error(exc) is not LedgerErrorClass.NOT_FOUND:
                log_event(logging.ERROR, "Provider acknowledge failed", log_ctx, error=str(exc))
                raise HandshakeError(
                    f"Provider acknowledge failed: {exc}",
                    wallet=wallet,
                    provider=provider_address,
                ) from exc
            log_event(logging.WARNING, "Ledger account missing during acknowledge, funding once", log_ctx)
            await self._recover(wallet, provider_address, log_ctx)

        provider.acknowledged = True
        log_event(logging.INFO, "Provider acknowledged", log_ctx)
        return provider

    async def _recover(self, wallet: str, provider_address: str, log_ctx: dict) -> None:
        try:
            await self._bootstrap.ensure_funded(
                wallet,
                self._minimum_balance,
                self._top_up_amount,
                force_top_up=True,
            )
        except LedgerError as exc:
            raise HandshakeError(
                f"Funding recovery failed: {exc.message}",
                wallet=wallet,
                provider=provider_address,
                ledger_code=exc.code,
            ) from exc

        try:
            await self._marketplace.acknowledge_provider(wallet, provider_address)
        except Exception as exc:
            log_event(logging.ERROR, "Provider acknowledge failed after funding", log_ctx, error=str(exc))
            raise HandshakeError(
                f"Provider acknowledge failed after funding: {exc}",
                wallet=wallet,
                provider=provider_address,
            ) from exc

    @staticmethod
    def _key(wallet: str, provider_address: str) -> Tuple[str, str]:
        return wallet.lower(), provider_address.lower()
