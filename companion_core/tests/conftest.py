import asyncio
from decimal import Decimal

import pytest

from companion_core.domain.models import ChainReceipt, LedgerAccount, ServiceMetadata


class FakeLedger:
    """内存账本，记录每一次调用。"""

    def __init__(self):
        self.balances = {}
        self.calls = []
        self.create_error = None
        self.deposit_error = None
        self.read_error = None

    async def get_account(self, wallet):
        self.calls.append(("get_account", wallet))
        if self.read_error:
            raise self.read_error
        if wallet not in self.balances:
            raise RuntimeError("Account does not exist")
        return LedgerAccount(owner_wallet=wallet, total_balance=self.balances[wallet], exists=True)

    async def create_account(self, wallet, initial_amount):
        self.calls.append(("create_account", wallet, initial_amount))
        if self.create_error:
            raise self.create_error
        self.balances[wallet] = Decimal(initial_amount)

    async def deposit(self, wallet, amount):
        self.calls.append(("deposit", wallet, amount))
        if self.deposit_error:
            raise self.deposit_error
        self.balances[wallet] += Decimal(amount)

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)


class FakeMarketplace:
    """ack_errors 按调用顺序弹出（None 表示成功）；ack_always 设置后每次都抛出。"""

    def __init__(self, endpoint="https://provider.example/v1/proxy", model="llama-3.3-70b-instruct"):
        self.ack_errors = []
        self.ack_always = None
        self.ack_calls = 0
        self.metadata = ServiceMetadata(endpoint=endpoint, model=model)
        self.metadata_error = None
        self.signed = []

    async def acknowledge_provider(self, wallet, provider_address):
        self.ack_calls += 1
        if self.ack_always:
            raise self.ack_always
        if self.ack_errors:
            err = self.ack_errors.pop(0)
            if err is not None:
                raise err

    async def get_service_metadata(self, provider_address):
        if self.metadata_error:
            raise self.metadata_error
        return self.metadata

    async def sign_request_headers(self, provider_address, content):
        self.signed.append((provider_address, content))
        return {"Authorization": "Bearer signed", "X-Content-Hash": str(len(content))}


class FakeChain:
    def __init__(self):
        self.error = None
        self.started = []

    async def start_chat_session(self, token_id):
        self.started.append(token_id)
        # 模拟等待交易回执时让出事件循环
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return ChainReceipt(tx_hash="0xabc", block_number=7)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def marketplace():
    return FakeMarketplace()


@pytest.fixture
def chain():
    return FakeChain()
