import asyncio
import random

import pytest

from companion_core.agents.chat_session import ChatSessionController
from companion_core.domain.exceptions import (
    InferTimeoutError,
    MalformedResponseError,
    NetworkError,
    ProviderUnavailableError,
    SessionStartError,
    UnrecoverableError,
)
from companion_core.domain.models import AgentProfile, FallbackCategory, SessionState
from companion_core.fallback.responses import (
    ERROR_RESPONSES,
    FALLBACK_RESPONSES,
    PERSONALIZED_GREETINGS,
    FallbackResponseEngine,
)
from companion_core.prompts import WELCOME_TEMPLATES


USER = "0x1111111111111111111111111111111111111111"
WALLET = "0x549e8F736D8DB98b5479160333fcaEb812EAF1fa"
PROVIDER = "0xf07240Efa67755B5311bc75784a061eDB47165Dd"


class SettingsStub:
    default_personality = "Gentle and lovely AI agent"
    session_welcome_message = False


class FakeDispatcher:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def infer(self, wallet, provider_address, system_prompt, history, last_user_message=None, log_ctx=None):
        self.calls.append({"history": tuple(history), "system_prompt": system_prompt, "last": last_user_message})
        if self.error:
            raise self.error
        return f"reply {len(self.calls)}"


def make_controller(dispatcher, chain, cfg=None, seed=7, name="Luna", token_id="2"):
    return ChatSessionController(
        agent=AgentProfile(token_id=token_id, name=name),
        user_address=USER,
        service_wallet=WALLET,
        provider_address=PROVIDER,
        dispatcher=dispatcher,
        chain=chain,
        cfg=cfg or SettingsStub(),
        rng=random.Random(seed),
    )


def greeting_variants(agent_name):
    pool = set(FALLBACK_RESPONSES[FallbackCategory.GREETINGS])
    for response in FALLBACK_RESPONSES[FallbackCategory.GREETINGS]:
        for template in PERSONALIZED_GREETINGS:
            pool.add(template.format(response=response, agent_name=agent_name))
    return pool


@pytest.mark.asyncio
async def test_send_before_start_is_noop(chain):
    dispatcher = FakeDispatcher()
    controller = make_controller(dispatcher, chain)

    assert await controller.send_message("hello") is None
    assert controller.messages == ()
    assert dispatcher.calls == []
    assert controller.state is SessionState.NOT_STARTED


@pytest.mark.asyncio
async def test_start_activates_session(chain):
    controller = make_controller(FakeDispatcher(), chain)

    receipt = await controller.start()

    assert receipt.tx_hash == "0xabc"
    assert controller.state is SessionState.ACTIVE
    assert controller.session.started
    assert chain.started == ["2"]
    # 重复 start 为空操作
    assert await controller.start() is None
    assert chain.started == ["2"]


@pytest.mark.asyncio
async def test_concurrent_starts_pay_once(chain):
    controller = make_controller(FakeDispatcher(), chain)

    results = await asyncio.gather(controller.start(), controller.start())

    assert chain.started == ["2"]
    assert sorted(r is None for r in results) == [False, True]
    assert controller.state is SessionState.ACTIVE


@pytest.mark.asyncio
async def test_start_failure_is_surfaced(chain):
    chain.error = RuntimeError("user rejected transaction")
    controller = make_controller(FakeDispatcher(), chain)

    with pytest.raises(SessionStartError) as ei:
        await controller.start()

    assert ei.value.code == "SESSION_START_FAILED"
    assert controller.state is SessionState.NOT_STARTED
    assert await controller.send_message("hi") is None


@pytest.mark.asyncio
async def test_messages_alternate_in_call_order(chain):
    dispatcher = FakeDispatcher()
    controller = make_controller(dispatcher, chain)
    await controller.start()

    texts = [f"message {i}" for i in range(5)]
    for text in texts:
        await controller.send_message(text)

    msgs = controller.messages
    assert len(msgs) == 10
    assert [m.role for m in msgs] == ["user", "assistant"] * 5
    assert [m.content for m in msgs[0::2]] == texts
    assert [m.content for m in msgs[1::2]] == [f"reply {i}" for i in range(1, 6)]
    # 每次推理都带上完整历史，且末尾为当前用户消息
    assert [len(c["history"]) for c in dispatcher.calls] == [1, 3, 5, 7, 9]
    assert all(c["history"][-1].content == c["last"].content for c in dispatcher.calls)


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(8))
async def test_provider_failure_falls_back_to_greeting(chain, seed):
    dispatcher = FakeDispatcher(error=ProviderUnavailableError("AI service temporarily unavailable"))
    controller = make_controller(dispatcher, chain, seed=seed)
    await controller.start()

    reply = await controller.send_message("hello")

    assert [m.role for m in controller.messages] == ["user", "assistant"]
    assert reply is controller.messages[-1]
    assert reply.content in greeting_variants("Luna")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        UnrecoverableError("handshake failed"),
        MalformedResponseError("no choices"),
        ValueError("unexpected"),
    ],
)
async def test_content_fallback_for_non_transport_failures(chain, error):
    controller = make_controller(FakeDispatcher(error=error), chain)
    await controller.start()

    reply = await controller.send_message("我好累")

    assert reply.content in FALLBACK_RESPONSES[FallbackCategory.CARE]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [InferTimeoutError("timed out"), NetworkError("refused")])
async def test_transport_failures_use_error_responses(chain, error):
    controller = make_controller(FakeDispatcher(error=error), chain)
    await controller.start()

    reply = await controller.send_message("我好累")

    assert reply.content in ERROR_RESPONSES
    assert len(controller.messages) == 2


@pytest.mark.asyncio
async def test_blank_message_is_ignored(chain):
    dispatcher = FakeDispatcher()
    controller = make_controller(dispatcher, chain)
    await controller.start()

    assert await controller.send_message("   ") is None
    assert controller.messages == ()


@pytest.mark.asyncio
async def test_concurrent_sends_are_serialized(chain):
    class SlowDispatcher(FakeDispatcher):
        async def infer(self, *args, **kwargs):
            await asyncio.sleep(0)
            return await super().infer(*args, **kwargs)

    controller = make_controller(SlowDispatcher(), chain)
    await controller.start()

    await asyncio.gather(*(controller.send_message(f"m{i}") for i in range(4)))

    assert [m.role for m in controller.messages] == ["user", "assistant"] * 4


@pytest.mark.asyncio
async def test_welcome_message_when_enabled(chain):
    class WelcomeSettings(SettingsStub):
        session_welcome_message = True

    controller = make_controller(FakeDispatcher(), chain, cfg=WelcomeSettings(), token_id="1")
    await controller.start()

    assert len(controller.messages) == 1
    welcome = controller.messages[0]
    assert welcome.role == "assistant"
    expected = {
        t.format(name="Luna", personality="Mysterious and charming, speaks with subtle hints")
        for t in WELCOME_TEMPLATES
    }
    assert welcome.content in expected


def test_system_prompt_uses_persona(chain):
    controller = make_controller(FakeDispatcher(), chain)
    prompt = controller.system_prompt
    assert "你是Luna" in prompt
    assert "Gentle and lovely AI agent" in prompt


def test_injected_fallback_engine_is_used(chain):
    engine = FallbackResponseEngine(rng=random.Random(1))
    controller = ChatSessionController(
        agent=AgentProfile(token_id="2", name="Luna"),
        user_address=USER,
        service_wallet=WALLET,
        provider_address=PROVIDER,
        dispatcher=FakeDispatcher(),
        chain=chain,
        fallback=engine,
        cfg=SettingsStub(),
    )
    assert controller._fallback is engine
