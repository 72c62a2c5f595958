import pytest

from courier.agent.policy import RespondPolicy
from courier.config import AgentConfig
from courier.models import ChannelType, ConversationState, Decision, InboundMessage, ModelTier


class StubClassifier:
    def __init__(self, result=Decision.IGNORE, error: Exception | None = None):
        self.result = result
        self.error = error
        self.prompts: list[tuple[str, ModelTier]] = []

    async def classify(self, prompt: str, tier: ModelTier = ModelTier.LIGHT):
        self.prompts.append((prompt, tier))
        if self.error:
            raise self.error
        return self.result


def _message(text: str = "", **kwargs) -> InboundMessage:
    return InboundMessage(id="1", chat_id="-100", sender_id="42", sender_name="alice", text=text, **kwargs)


def _policy(classifier: StubClassifier, **agent_kwargs) -> RespondPolicy:
    agent = AgentConfig(name="Courier", handle="courier_bot", **agent_kwargs)
    return RespondPolicy(classifier, agent)


def _state() -> ConversationState:
    return ConversationState(room_id="room", variables={"agentName": "Courier", "recentMessages": "alice: hi"})


@pytest.mark.asyncio
async def test_mention_responds_without_consulting_classifier() -> None:
    classifier = StubClassifier(Decision.IGNORE)
    decision = await _policy(classifier).decide(_message("hey @courier_bot what's up"), _state())
    assert decision == Decision.RESPOND
    assert classifier.prompts == []


@pytest.mark.asyncio
async def test_direct_chat_always_responds() -> None:
    classifier = StubClassifier(Decision.STOP)
    message = _message("anything", channel_type=ChannelType.DIRECT)
    assert await _policy(classifier).decide(message, _state()) == Decision.RESPOND
    assert classifier.prompts == []


@pytest.mark.asyncio
async def test_attachment_without_text_is_ignored() -> None:
    classifier = StubClassifier(Decision.RESPOND)
    message = _message("", attachment="file-id")
    assert await _policy(classifier).decide(message, _state()) == Decision.IGNORE
    assert classifier.prompts == []


@pytest.mark.asyncio
async def test_group_text_goes_to_classifier_on_light_tier() -> None:
    classifier = StubClassifier(Decision.RESPOND)
    decision = await _policy(classifier).decide(_message("what do you all think?"), _state())
    assert decision == Decision.RESPOND
    prompt, tier = classifier.prompts[0]
    assert tier == ModelTier.LIGHT
    assert "Courier" in prompt
    assert "alice: hi" in prompt


@pytest.mark.asyncio
async def test_classifier_failure_means_ignore() -> None:
    classifier = StubClassifier(error=RuntimeError("upstream down"))
    assert await _policy(classifier).decide(_message("hello"), _state()) == Decision.IGNORE


@pytest.mark.asyncio
async def test_raw_classifier_text_is_parsed() -> None:
    classifier = StubClassifier("I think [STOP]")
    assert await _policy(classifier).decide(_message("go away"), _state()) == Decision.STOP


@pytest.mark.asyncio
async def test_empty_message_is_ignored() -> None:
    classifier = StubClassifier(Decision.RESPOND)
    assert await _policy(classifier).decide(_message("   "), _state()) == Decision.IGNORE


@pytest.mark.asyncio
async def test_template_override_is_used() -> None:
    classifier = StubClassifier(Decision.IGNORE)
    agent = AgentConfig(name="Courier", templates={"telegram_should_respond": "custom for {{agentName}}"})
    policy = RespondPolicy(classifier, agent, template_names=("telegram_should_respond",))
    await policy.decide(_message("hi"), _state())
    assert classifier.prompts[0][0] == "custom for Courier"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("[RESPOND]", Decision.RESPOND),
        ("respond", Decision.RESPOND),
        ("Reasoning... [IGNORE]", Decision.IGNORE),
        ("STOP", Decision.STOP),
        ("RESPOND or IGNORE", Decision.IGNORE),
        ("maybe", Decision.IGNORE),
        ("", Decision.IGNORE),
        (None, Decision.IGNORE),
    ],
)
def test_decision_parse(raw, expected) -> None:
    assert Decision.parse(raw) == expected
