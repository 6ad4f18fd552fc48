import asyncio

import pytest

from coworker.conversation.clarification import ClarificationState
from coworker.conversation.turns import Turn, TurnKind, TurnMetadata, TurnRole
from coworker.core.exceptions import (
    IncompleteClarificationError,
    InvalidAnswerError,
    InvalidTurnError,
    NoActiveClarificationError,
    NoActiveSessionError,
    ProviderError,
    ResponseValidationError,
    SessionBusyError,
)
from coworker.core.prompts import PromptManager
from tests.fakes import ScriptedProvider, clarify, direct, finding, make_orchestrator

TASK = "task-1"
QUESTIONS = ("Which competitors?", "What price range?")


def _gate(response, started: asyncio.Event, release: asyncio.Event):
    async def wait():
        started.set()
        await release.wait()
        return response
    return wait


async def _pending_round(provider, task_context):
    orchestrator = make_orchestrator(provider)
    orchestrator.attach(TASK, task_context=task_context)
    await orchestrator.process_message("Research competitor pricing")
    return orchestrator


# --- Scenario-level flows ---

async def test_direct_answer_appends_one_assistant_turn(task_context):
    provider = ScriptedProvider(direct("It's sunny. Want to get back to the proposal?"))
    orchestrator = make_orchestrator(provider)
    session = orchestrator.attach(TASK, task_context=task_context)

    result = await orchestrator.process_message("What's the weather")

    assert not result.requires_clarification
    assert result.finding is None
    user, reply = result.new_turns
    assert user.role == TurnRole.USER and user.content == "What's the weather"
    assert reply.role == TurnRole.ASSISTANT
    assert reply.kind == TurnKind.PLAIN
    assert reply.content == "It's sunny. Want to get back to the proposal?"
    assert list(session.new_turns) == result.new_turns
    assert session.collector.state == ClarificationState.IDLE


async def test_research_request_runs_clarification_then_research(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS), finding("Acme is $20/mo; Globex is $35/mo."))
    orchestrator = make_orchestrator(provider)
    session = orchestrator.attach(TASK, task_context=task_context)

    message = await orchestrator.process_message("Research competitor pricing")

    assert message.requires_clarification
    assert message.questions == list(QUESTIONS)
    prompt_turn = message.new_turns[-1]
    assert prompt_turn.kind == TurnKind.CLARIFYING_QUESTION
    assert prompt_turn.content.startswith(PromptManager.CLARIFICATION_INTRO)
    assert "1. Which competitors?" in prompt_turn.content
    assert "2. What price range?" in prompt_turn.content
    assert session.collector.state == ClarificationState.AWAITING_ANSWERS

    research = await orchestrator.submit_clarifications(["Acme, Globex", "$10-50/mo"])

    assert research.finding is not None
    assert len(research.finding.clarifying_qa) == 2
    assert research.finding.query == "Research competitor pricing"
    (result_turn,) = research.new_turns
    assert result_turn.kind == TurnKind.RESEARCH_RESULT
    assert result_turn.metadata.finding_id == research.finding.id
    assert result_turn.content == research.finding.summary
    assert session.collector.state == ClarificationState.IDLE
    assert session.preserved_research is None
    assert [t.kind for t in session.new_turns] == [
        TurnKind.PLAIN,
        TurnKind.CLARIFYING_QUESTION,
        TurnKind.RESEARCH_RESULT,
    ]


async def test_classification_failure_becomes_apology(task_context):
    provider = ScriptedProvider(
        ProviderError("invalid api key", transient=False),
        ProviderError("invalid api key", transient=False),
    )
    orchestrator = make_orchestrator(provider)
    orchestrator.attach(TASK, task_context=task_context)

    result = await orchestrator.process_message("Help me start")

    assert not result.requires_clarification
    user, apology = result.new_turns
    assert apology.role == TurnRole.ASSISTANT
    assert apology.content == PromptManager.CLASSIFICATION_APOLOGY


async def test_unparseable_replies_become_apology(task_context):
    provider = ScriptedProvider(ResponseValidationError("bad"), ResponseValidationError("bad"))
    orchestrator = make_orchestrator(provider)
    orchestrator.attach(TASK, task_context=task_context)

    result = await orchestrator.process_message("Help me start")

    assert result.new_turns[-1].content == PromptManager.CLASSIFICATION_APOLOGY


async def test_seven_questions_are_truncated_to_five(task_context):
    provider = ScriptedProvider(clarify(*[f"Question {i}?" for i in range(1, 8)]))
    orchestrator = make_orchestrator(provider)
    session = orchestrator.attach(TASK, task_context=task_context)

    result = await orchestrator.process_message("Research everything")

    assert len(result.questions) == 5
    assert len(session.pending_clarification.questions) == 5


# --- Clarification misuse ---

async def test_new_message_while_round_pending_is_rejected(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS))
    orchestrator = await _pending_round(provider, task_context)
    before = list(orchestrator.current_session.turns)

    with pytest.raises(SessionBusyError):
        await orchestrator.process_message("Actually, something else")

    assert orchestrator.current_session.turns == before
    assert len(provider.calls) == 1


async def test_incomplete_submission_leaves_round_untouched(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS))
    orchestrator = await _pending_round(provider, task_context)

    with pytest.raises(IncompleteClarificationError):
        await orchestrator.submit_clarifications(["Acme, Globex"])

    pending = orchestrator.current_session.pending_clarification
    assert pending.answers == [None, None]
    assert len(provider.calls) == 1


async def test_blank_or_extra_answers_are_rejected(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS))
    orchestrator = await _pending_round(provider, task_context)

    with pytest.raises(InvalidAnswerError):
        await orchestrator.submit_clarifications(["Acme", "   "])
    with pytest.raises(InvalidAnswerError):
        await orchestrator.submit_clarifications(["a", "b", "c"])

    assert orchestrator.current_session.pending_clarification.answers == [None, None]


async def test_none_keeps_answers_recorded_through_collector(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS), finding())
    orchestrator = await _pending_round(provider, task_context)
    orchestrator.current_session.collector.answer(0, "Acme")

    research = await orchestrator.submit_clarifications([None, "$10-50/mo"])

    assert [qa.answer for qa in research.finding.clarifying_qa] == ["Acme", "$10-50/mo"]


async def test_submit_without_round(task_context):
    orchestrator = make_orchestrator(ScriptedProvider())
    orchestrator.attach(TASK, task_context=task_context)

    with pytest.raises(NoActiveClarificationError):
        await orchestrator.submit_clarifications(["anything"])
    with pytest.raises(NoActiveClarificationError):
        await orchestrator.retry_research()


async def test_cancel_clarification_allows_new_messages(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS), direct())
    orchestrator = await _pending_round(provider, task_context)

    assert orchestrator.cancel_clarification() is True
    assert orchestrator.cancel_clarification() is False

    result = await orchestrator.process_message("Never mind, how do I start?")
    assert not result.requires_clarification


# --- Research failure and retry ---

async def test_failed_research_keeps_answers_for_retry(task_context):
    provider = ScriptedProvider(
        clarify(*QUESTIONS),
        ProviderError("bad gateway", transient=False),
        finding("Found it."),
    )
    orchestrator = await _pending_round(provider, task_context)
    session = orchestrator.current_session

    failed = await orchestrator.submit_clarifications(["Acme, Globex", "$10-50/mo"])

    assert failed.finding is None
    (apology,) = failed.new_turns
    assert apology.content == PromptManager.RESEARCH_APOLOGY
    assert session.preserved_research is not None
    assert session.collector.state == ClarificationState.IDLE

    retried = await orchestrator.retry_research()

    assert retried.finding.summary == "Found it."
    assert len(retried.finding.clarifying_qa) == 2
    assert session.preserved_research is None
    assert provider.calls[1].context == provider.calls[2].context


async def test_transient_research_failure_is_retried_inline(task_context):
    provider = ScriptedProvider(
        clarify(*QUESTIONS),
        ProviderError("timeout", transient=True),
        finding(),
    )
    orchestrator = await _pending_round(provider, task_context)

    research = await orchestrator.submit_clarifications(["Acme", "cheap"])

    assert research.finding is not None
    assert len(provider.calls) == 3


# --- Session lifecycle ---

async def test_attach_is_idempotent(task_context):
    orchestrator = make_orchestrator(ScriptedProvider())
    history = [Turn.user("Earlier question"), Turn.assistant("Earlier answer", TurnMetadata.plain())]

    first = orchestrator.attach(TASK, history, task_context)
    second = orchestrator.attach(TASK, [Turn.user("ignored")])

    assert first is second
    assert list(first.history) == history
    assert first.new_turns == ()


async def test_attach_accepts_stored_dicts(task_context):
    orchestrator = make_orchestrator(ScriptedProvider(direct()))
    stored = [t.to_dict() for t in (Turn.user("Earlier"), Turn.assistant("Reply"))]

    session = orchestrator.attach(TASK, stored, task_context)
    await orchestrator.process_message("Next step?")

    assert [t.content for t in session.history] == ["Earlier", "Reply"]
    assert len(session.new_turns) == 2


async def test_history_is_passed_to_classifier(task_context):
    provider = ScriptedProvider(direct())
    orchestrator = make_orchestrator(provider)
    orchestrator.attach(TASK, [Turn.user("We picked tiered pricing")], task_context)

    await orchestrator.process_message("What next?")

    assert "We picked tiered pricing" in provider.calls[0].context


async def test_reset_drops_new_turns_and_keeps_history(task_context):
    provider = ScriptedProvider(direct(), clarify(*QUESTIONS))
    orchestrator = make_orchestrator(provider)
    history = [Turn.user("Earlier")]
    session = orchestrator.attach(TASK, history, task_context)
    await orchestrator.process_message("Hi")
    await orchestrator.process_message("Research pricing")

    orchestrator.reset()

    assert session.new_turns == ()
    assert list(session.history) == history
    assert session.collector.state == ClarificationState.IDLE
    assert orchestrator.current_session is None

    fresh = orchestrator.attach(TASK, history, task_context)
    assert fresh is not session


async def test_unattached_calls_raise(task_context):
    orchestrator = make_orchestrator(ScriptedProvider())

    with pytest.raises(NoActiveSessionError):
        await orchestrator.process_message("hello")
    with pytest.raises(NoActiveSessionError):
        orchestrator.get_session("unknown")


async def test_empty_message_is_rejected(task_context):
    provider = ScriptedProvider()
    orchestrator = make_orchestrator(provider)
    session = orchestrator.attach(TASK, task_context=task_context)

    with pytest.raises(InvalidTurnError):
        await orchestrator.process_message("   ")

    assert session.turns == []
    assert provider.calls == []


async def test_sessions_are_isolated_per_task(task_context):
    provider = ScriptedProvider(clarify(*QUESTIONS), direct("Other task reply"))
    orchestrator = make_orchestrator(provider)
    orchestrator.attach("task-a", task_context=task_context)
    await orchestrator.process_message("Research pricing", task_id="task-a")

    orchestrator.attach("task-b", task_context=task_context)
    result = await orchestrator.process_message("Quick question", task_id="task-b")

    assert result.new_turns[-1].content == "Other task reply"
    assert orchestrator.get_session("task-a").collector.is_active()
    assert not orchestrator.get_session("task-b").collector.is_active()


# --- Concurrency ---

async def test_concurrent_messages_are_serialized(task_context):
    started, release = asyncio.Event(), asyncio.Event()
    provider = ScriptedProvider(_gate(direct("first reply"), started, release), direct("second reply"))
    orchestrator = make_orchestrator(provider)
    session = orchestrator.attach(TASK, task_context=task_context)

    first = asyncio.create_task(orchestrator.process_message("first"))
    await started.wait()
    second = asyncio.create_task(orchestrator.process_message("second"))
    await asyncio.sleep(0)

    assert session.is_busy()
    assert len(provider.calls) == 1

    release.set()
    await asyncio.gather(first, second)

    assert [t.content for t in session.turns] == ["first", "first reply", "second", "second reply"]


async def test_detach_mid_flight_discards_result(task_context):
    started, release = asyncio.Event(), asyncio.Event()
    provider = ScriptedProvider(_gate(direct("late reply"), started, release))
    orchestrator = make_orchestrator(provider)
    session = orchestrator.attach(TASK, task_context=task_context)

    pending = asyncio.create_task(orchestrator.process_message("hello"))
    await started.wait()
    orchestrator.detach(TASK)
    release.set()
    result = await pending

    assert result.discarded
    assert [t.content for t in result.new_turns] == ["hello"]
    assert all(t.content != "late reply" for t in session.turns)


async def test_detach_during_research_discards_finding(task_context):
    started, release = asyncio.Event(), asyncio.Event()
    provider = ScriptedProvider(clarify(*QUESTIONS), _gate(finding(), started, release))
    orchestrator = await _pending_round(provider, task_context)

    pending = asyncio.create_task(orchestrator.submit_clarifications(["Acme", "cheap"]))
    await started.wait()
    orchestrator.detach(TASK)
    release.set()
    result = await pending

    assert result.discarded
    assert result.finding is None
    assert result.new_turns == []
