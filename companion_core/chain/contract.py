"""AI 代理 NFT 合约客户端。

只封装会话层需要的一个操作：startChatSession(tokenId)，
按合约 CHAT_PRICE() 的报价支付固定费用，签名发送后等待回执。
"""

import logging
from typing import Optional

from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from companion_core.config.settings import settings
from companion_core.domain.exceptions import SessionStartError, ValidationError
from companion_core.domain.models import ChainReceipt
from companion_core.infrastructure.logging.logger import log_event


AGENT_CHAT_ABI = [
    {
        "inputs": [],
        "name": "CHAT_PRICE",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "startChatSession",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]


class AgentChatContract:
    """ChainCollaborator 的 web3 实现。"""

    def __init__(
        self,
        private_key: Optional[str] = None,
        contract_address: Optional[str] = None,
        rpc_url: Optional[str] = None,
        receipt_timeout: Optional[float] = None,
        w3: Optional[AsyncWeb3] = None,
    ):
        private_key = private_key or settings.private_key
        contract_address = contract_address or settings.contract_address
        if not private_key:
            raise ValidationError(code="MISSING_PRIVATE_KEY", message="PRIVATE_KEY not set")
        if not contract_address:
            raise ValidationError(code="MISSING_CONTRACT_ADDRESS", message="CONTRACT_ADDRESS not set")

        self._w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or settings.rpc_url))
        self._account = Account.from_key(private_key)
        self._receipt_timeout = receipt_timeout or settings.chain_timeout
        self._contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=AGENT_CHAT_ABI,
        )

    @property
    def address(self) -> str:
        return self._account.address

    async def chat_price(self) -> int:
        """合约当前的会话价格（wei）。"""

        return await self._contract.functions.CHAT_PRICE().call()

    async def start_chat_session(self, token_id: str) -> ChainReceipt:
        try:
            token = int(token_id)
        except (TypeError, ValueError) as e:
            raise SessionStartError(f"Invalid token id: {token_id!r}", token_id=token_id) from e

        log_ctx = {"token_id": token_id, "sender": self.address}
        try:
            price = await self.chat_price()
            nonce = await self._w3.eth.get_transaction_count(self.address)
            tx = await self._contract.functions.startChatSession(token).build_transaction(
                {"from": self.address, "value": price, "nonce": nonce}
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            log_event(logging.INFO, "startChatSession sent", log_ctx, tx_hash=AsyncWeb3.to_hex(tx_hash), value=price)
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except ContractLogicError as e:
            raise SessionStartError(f"startChatSession reverted: {e}", token_id=token_id) from e
        except TimeExhausted as e:
            raise SessionStartError("Timed out waiting for startChatSession receipt", token_id=token_id) from e

        if receipt["status"] != 1:
            raise SessionStartError(
                "startChatSession transaction failed",
                token_id=token_id,
                tx_hash=AsyncWeb3.to_hex(tx_hash),
            )
        return ChainReceipt(tx_hash=AsyncWeb3.to_hex(tx_hash), block_number=receipt["blockNumber"])
