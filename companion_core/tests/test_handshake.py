from decimal import Decimal

import pytest

from companion_core.domain.exceptions import HandshakeError
from companion_core.orchestration.handshake import ProviderHandshake
from companion_core.orchestration.ledger import LedgerBootstrap


WALLET = "0x549e8F736D8DB98b5479160333fcaEb812EAF1fa"
PROVIDER = "0xf07240Efa67755B5311bc75784a061eDB47165Dd"


def make_handshake(ledger, marketplace):
    ledger.balances[WALLET] = Decimal("0.5")
    return ProviderHandshake(marketplace, LedgerBootstrap(ledger), Decimal("0.01"), Decimal("0.02"))


@pytest.mark.asyncio
async def test_acknowledge_first_try(ledger, marketplace):
    handshake = make_handshake(ledger, marketplace)

    provider = await handshake.ensure_acknowledged(WALLET, PROVIDER)

    assert provider.acknowledged
    assert marketplace.ack_calls == 1
    assert ledger.count("deposit") == 0


@pytest.mark.asyncio
async def test_missing_account_recovers_once(ledger, marketplace):
    marketplace.ack_errors = [RuntimeError("Account does not exist"), None]
    handshake = make_handshake(ledger, marketplace)

    provider = await handshake.ensure_acknowledged(WALLET, PROVIDER)

    assert provider.acknowledged
    assert marketplace.ack_calls == 2
    assert ledger.count("deposit") == 1


@pytest.mark.asyncio
async def test_missing_account_retry_is_bounded(ledger, marketplace):
    marketplace.ack_always = RuntimeError("Account does not exist")
    handshake = make_handshake(ledger, marketplace)

    with pytest.raises(HandshakeError) as ei:
        await handshake.ensure_acknowledged(WALLET, PROVIDER)

    assert ei.value.code == HandshakeError.UNRECOVERABLE
    assert marketplace.ack_calls == 2
    assert ledger.count("deposit") == 1
    assert not handshake.is_acknowledged(WALLET, PROVIDER)


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(ledger, marketplace):
    marketplace.ack_errors = [RuntimeError("provider signer mismatch")]
    handshake = make_handshake(ledger, marketplace)

    with pytest.raises(HandshakeError):
        await handshake.ensure_acknowledged(WALLET, PROVIDER)

    assert marketplace.ack_calls == 1
    assert ledger.count("deposit") == 0


@pytest.mark.asyncio
async def test_failed_funding_recovery(ledger, marketplace):
    marketplace.ack_errors = [RuntimeError("account does not exist")]
    handshake = make_handshake(ledger, marketplace)
    ledger.deposit_error = RuntimeError("out of gas")

    with pytest.raises(HandshakeError) as ei:
        await handshake.ensure_acknowledged(WALLET, PROVIDER)

    assert ei.value.extra["ledger_code"] == "DEPOSIT_FAILED"
    assert marketplace.ack_calls == 1


@pytest.mark.asyncio
async def test_acknowledgment_cached_for_process(ledger, marketplace):
    handshake = make_handshake(ledger, marketplace)

    await handshake.ensure_acknowledged(WALLET, PROVIDER)
    await handshake.ensure_acknowledged(WALLET.lower(), PROVIDER)

    assert marketplace.ack_calls == 1
    assert handshake.is_acknowledged(WALLET, PROVIDER)
