import pytest

from coworker.adapters.llm import LLMCompletionProvider
from coworker.conversation.intent import (
    DirectAnswer,
    IntentClassifier,
    IntentKind,
    NeedsClarification,
    clamp_questions,
)
from coworker.conversation.turns import Turn
from coworker.core.exceptions import (
    ClassificationError,
    ProviderError,
    ResponseValidationError,
)
from coworker.core.schemas import IntentResponse
from tests.fakes import MockLLMClient, ScriptedProvider, clarify, direct


def _classifier(provider, **kwargs) -> IntentClassifier:
    kwargs.setdefault("backoff_seconds", 0)
    return IntentClassifier(provider, **kwargs)


async def test_direct_answer_in_one_round_trip(task_context):
    provider = ScriptedProvider(direct("It's sunny. Back to the proposal?"))

    result = await _classifier(provider).classify("What's the weather", task_context)

    assert result == DirectAnswer(answer="It's sunny. Back to the proposal?")
    assert result.kind == IntentKind.DIRECT
    assert len(provider.calls) == 1
    call = provider.calls[0]
    assert call.response_schema is IntentResponse
    assert "Draft proposal" in call.context
    assert "What's the weather" in call.context


async def test_research_request_returns_questions(task_context):
    provider = ScriptedProvider(clarify("Which competitors?", "What price range?"))

    result = await _classifier(provider).classify("Research competitor pricing", task_context)

    assert isinstance(result, NeedsClarification)
    assert result.kind == IntentKind.NEEDS_CLARIFICATION
    assert result.questions == ("Which competitors?", "What price range?")


async def test_more_than_five_questions_are_truncated(task_context):
    provider = ScriptedProvider(clarify(*[f"Question {i}?" for i in range(1, 8)]))

    result = await _classifier(provider).classify("Research everything", task_context)

    assert result.questions == tuple(f"Question {i}?" for i in range(1, 6))


async def test_blank_questions_are_dropped(task_context):
    provider = ScriptedProvider(clarify("  ", "Which market?", None, ""))

    result = await _classifier(provider).classify("Research the market", task_context)

    assert result.questions == ("Which market?",)


async def test_no_usable_questions_falls_back_to_generic_question(task_context):
    provider = ScriptedProvider(clarify())

    result = await _classifier(provider, fallback_question="What exactly?").classify("Look it up", task_context)

    assert result.questions == ("What exactly?",)


async def test_null_answer_on_clarification_reply_is_accepted(task_context):
    raw = '{"kind": "needsClarification", "answer": null, "questions": ["Which competitors?"]}'
    llm = MockLLMClient(raw, raw)
    provider = LLMCompletionProvider(llm, timeout_seconds=5)

    result = await _classifier(provider).classify("Research competitor pricing", task_context)

    assert result == NeedsClarification(questions=("Which competitors?",))
    assert len(llm.prompts) == 1


async def test_null_questions_on_direct_reply_is_accepted(task_context):
    llm = MockLLMClient('{"kind": "direct", "answer": "Start with the outline.", "questions": null}')
    provider = LLMCompletionProvider(llm, timeout_seconds=5)

    result = await _classifier(provider).classify("Where do I start?", task_context)

    assert result == DirectAnswer(answer="Start with the outline.")


def test_clamp_questions_strips_whitespace():
    assert clamp_questions(["  a?  ", "b?"], "fallback") == ["a?", "b?"]


async def test_invalid_payload_is_retried_with_stricter_instruction(task_context):
    provider = ScriptedProvider(ResponseValidationError("not json"), direct("Here you go."))

    result = await _classifier(provider).classify("Help me start", task_context)

    assert result == DirectAnswer(answer="Here you go.")
    assert len(provider.calls) == 2
    first, second = provider.calls
    assert "could not be parsed" not in first.instructions
    assert "could not be parsed" in second.instructions
    assert first.context == second.context


async def test_two_invalid_payloads_raise_classification_error(task_context):
    provider = ScriptedProvider(ResponseValidationError("bad"), ResponseValidationError("still bad"))

    with pytest.raises(ClassificationError):
        await _classifier(provider).classify("Help me start", task_context)
    assert len(provider.calls) == 2


async def test_transient_error_is_retried_once(task_context):
    provider = ScriptedProvider(ProviderError("timeout", transient=True), direct())

    result = await _classifier(provider).classify("Help me start", task_context)

    assert isinstance(result, DirectAnswer)
    assert len(provider.calls) == 2
    assert provider.calls[0].instructions == provider.calls[1].instructions


async def test_second_transient_error_gives_up(task_context):
    provider = ScriptedProvider(
        ProviderError("timeout", transient=True),
        ProviderError("timeout", transient=True),
    )

    with pytest.raises(ClassificationError) as exc_info:
        await _classifier(provider).classify("Help me start", task_context)
    assert isinstance(exc_info.value.__cause__, ProviderError)


async def test_non_transient_error_is_not_retried(task_context):
    provider = ScriptedProvider(ProviderError("invalid api key", transient=False))

    with pytest.raises(ClassificationError):
        await _classifier(provider).classify("Help me start", task_context)
    assert len(provider.calls) == 1


async def test_history_is_trimmed(task_context):
    provider = ScriptedProvider(direct())
    history = [Turn.user(f"old message {i}") for i in range(6)]

    await _classifier(provider, history_turns=2).classify("next", task_context, history)

    context = provider.calls[0].context
    assert "old message 5" in context
    assert "old message 4" in context
    assert "old message 3" not in context


async def test_classify_without_task_context():
    provider = ScriptedProvider(direct())

    await _classifier(provider).classify("hello")

    assert "(no task selected)" in provider.calls[0].context
