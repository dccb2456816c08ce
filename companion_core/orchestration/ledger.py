"""账本账户引导与充值。

在任何推理调用之前，确保服务钱包在计算市场里有一个余额充足的账户：

- 账户不存在：先以初始存款创建，再追加一次充值（两次独立调用，非原子）。
- 账户存在但余额低于最低运营余额：只充值。
- 账户存在且余额充足：只做一次余额检查，不产生任何费用。

本组件内部不重试，重试由调用方（ProviderHandshake）负责。
同一钱包的调用通过 asyncio.Lock 串行化，避免并发会话重复充值。
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Optional

from companion_core.domain.exceptions import LedgerError, LedgerErrorClass, classify_ledger_error
from companion_core.domain.models import LedgerAccount
from companion_core.infrastructure.logging.logger import log_event
from companion_core.providers.base import LedgerCollaborator


class LedgerBootstrap:
    def __init__(self, ledger: LedgerCollaborator, initial_amount: Decimal = Decimal("0.01")):
        self._ledger = ledger
        self._initial_amount = Decimal(initial_amount)
        self._locks: Dict[str, asyncio.Lock] = {}

    async def ensure_funded(
        self,
        wallet: str,
        minimum_balance: Decimal,
        top_up_amount: Decimal,
        *,
        force_top_up: bool = False,
    ) -> LedgerAccount:
        """确保账户存在且余额不低于 minimum_balance。

        Args:
            wallet: 服务钱包地址
            minimum_balance: 最低运营余额
            top_up_amount: 每次充值金额
            force_top_up: 账户已存在时也无条件充值一次（握手恢复流程使用）

        Returns:
            充值后的账户读取结果，余额保证不低于 minimum_balance

        Raises:
            LedgerError: 读取、创建或充值失败，或充值后余额仍不足
        """
        lock = self._locks.setdefault(wallet.lower(), asyncio.Lock())
        async with lock:
            return await self._ensure_funded(wallet, Decimal(minimum_balance), Decimal(top_up_amount), force_top_up)

    async def _ensure_funded(
        self,
        wallet: str,
        minimum_balance: Decimal,
        top_up_amount: Decimal,
        force_top_up: bool,
    ) -> LedgerAccount:
        log_ctx = {"wallet": wallet}
        account = await self._read_account(wallet)

        if account is None or not account.exists:
            log_event(logging.INFO, "Ledger account missing, creating", log_ctx, initial_amount=str(self._initial_amount))
            try:
                await self._ledger.create_account(wallet, self._initial_amount)
            except Exception as exc:
                log_event(logging.ERROR, "Ledger account creation failed", log_ctx, error=str(exc))
                raise LedgerError(
                    code=LedgerError.ACCOUNT_CREATION_FAILED,
                    message=f"Failed to create ledger account: {exc}",
                    http_status=500,
                    wallet=wallet,
                ) from exc
            await self._deposit(wallet, top_up_amount, log_ctx)
        elif account.total_balance < minimum_balance or force_top_up:
            log_event(
                logging.INFO,
                "Ledger balance top-up",
                log_ctx,
                balance=str(account.total_balance),
                minimum=str(minimum_balance),
                forced=force_top_up,
            )
            await self._deposit(wallet, top_up_amount, log_ctx)
        else:
            log_event(logging.INFO, "Ledger account funded", log_ctx, balance=str(account.total_balance))
            return account

        funded = await self._read_account(wallet)
        if funded is None or not funded.exists or funded.total_balance < minimum_balance:
            balance = funded.total_balance if funded else Decimal("0")
            log_event(logging.WARNING, "Ledger still underfunded after deposit", log_ctx, balance=str(balance))
            raise LedgerError(
                code=LedgerError.UNDERFUNDED,
                message=f"Ledger balance {balance} below minimum {minimum_balance}",
                http_status=402,
                wallet=wallet,
            )
        log_event(logging.INFO, "Ledger account ready", log_ctx, balance=str(funded.total_balance))
        return funded

    async def _read_account(self, wallet: str) -> Optional[LedgerAccount]:
        """读取账户；“账户不存在”类异常返回 None，其他异常转为 LedgerError。"""

        try:
            return await self._ledger.get_account(wallet)
        except Exception as exc:
            if classify_ledger_error(exc) is LedgerErrorClass.NOT_FOUND:
                return None
            raise LedgerError(
                code=LedgerError.ACCOUNT_READ_FAILED,
                message=f"Failed to read ledger account: {exc}",
                http_status=502,
                wallet=wallet,
            ) from exc

    async def _deposit(self, wallet: str, amount: Decimal, log_ctx: dict) -> None:
        try:
            await self._ledger.deposit(wallet, amount)
        except Exception as exc:
            log_event(logging.ERROR, "Ledger deposit failed", log_ctx, amount=str(amount), error=str(exc))
            raise LedgerError(
                code=LedgerError.DEPOSIT_FAILED,
                message=f"Failed to deposit {amount}: {exc}",
                http_status=502,
                wallet=wallet,
            ) from exc
        log_event(logging.INFO, "Ledger deposit done", log_ctx, amount=str(amount))
