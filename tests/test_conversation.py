"""Tests for the chat turn orchestrator."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from mindease.api.types import ChatRequest
from mindease.assistant.conversation import ConversationOrchestrator, build_model_messages
from mindease.assistant.mood import MoodScorer
from mindease.core.errors import ClientError, ForbiddenError, NotFoundError, PersistenceError, UpstreamError
from mindease.db.models import Chat, ChatMessage
from mindease.db.repo import create_chat


def _request(*turns, chat_id=None, language="en") -> ChatRequest:
    messages = [{"id": i, "text": text, "isUser": is_user} for i, (text, is_user) in enumerate(turns)]
    return ChatRequest.model_validate({"messages": messages, "chatId": chat_id, "language": language})


class Deferred:
    def __init__(self):
        self.calls = []

    def __call__(self, fn, *args):
        self.calls.append((fn, args))


@pytest.fixture
def orchestrator(fake_llm, session_factory):
    return ConversationOrchestrator(fake_llm, session_factory, MoodScorer(fake_llm, session_factory))


async def _messages(session_factory) -> list[ChatMessage]:
    async with session_factory() as db:
        res = await db.execute(select(ChatMessage).order_by(ChatMessage.created_at))
        return list(res.scalars().all())


class TestHandle:
    async def test_new_chat_full_exchange(self, orchestrator, fake_llm, session_factory):
        defer = Deferred()
        reply = await orchestrator.handle("user-1", _request(("I feel anxious", True)), defer)

        assert reply.text == "I'm here for you."
        async with session_factory() as db:
            chat = (await db.execute(select(Chat))).scalar_one()
        assert chat.id == reply.chat_id
        assert chat.user_id == "user-1"

        stored = await _messages(session_factory)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "I feel anxious"),
            ("assistant", "I'm here for you."),
        ]

        # mood scoring is handed off, not run inline
        assert fake_llm.calls_of("mood") == []
        assert defer.calls == [(orchestrator.mood_scorer.record, ("user-1", "I feel anxious", "en"))]

    async def test_script_content_sanitized(self, orchestrator, fake_llm, session_factory):
        defer = Deferred()
        await orchestrator.handle("user-1", _request(("<script>alert(1)</script>hello", True)), defer)

        stored = await _messages(session_factory)
        assert stored[0].content == "hello"
        sent = fake_llm.calls_of("reply")[0]["messages"]
        assert sent[-1] == {"role": "user", "content": "hello"}
        assert defer.calls[0][1][1] == "hello"

    async def test_existing_chat_reused(self, orchestrator, session_factory):
        async with session_factory() as db:
            chat = await create_chat(db, "user-1")
        reply = await orchestrator.handle("user-1", _request(("hi", True), chat_id=chat.id), Deferred())
        assert reply.chat_id == chat.id
        async with session_factory() as db:
            assert len((await db.execute(select(Chat))).scalars().all()) == 1

    async def test_foreign_chat_rejected(self, orchestrator, session_factory):
        async with session_factory() as db:
            chat = await create_chat(db, "someone-else")
        with pytest.raises(ForbiddenError):
            await orchestrator.handle("user-1", _request(("hi", True), chat_id=chat.id), Deferred())
        assert await _messages(session_factory) == []

    async def test_unknown_chat_rejected(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.handle(
                "user-1",
                _request(("hi", True), chat_id="6f1c1f7e-0000-4000-8000-000000000000"),
                Deferred(),
            )

    async def test_last_turn_must_be_user(self, orchestrator, fake_llm):
        with pytest.raises(ClientError) as exc:
            await orchestrator.handle("user-1", _request(("hi", True), ("hello!", False)), Deferred())
        assert exc.value.code == "INVALID_MESSAGE_FORMAT"
        assert fake_llm.calls == []

    async def test_empty_after_sanitizing_rejected(self, orchestrator, session_factory):
        with pytest.raises(ClientError) as exc:
            await orchestrator.handle("user-1", _request(("<script>x</script>   ", True)), Deferred())
        assert exc.value.code == "EMPTY_MESSAGE"
        async with session_factory() as db:
            assert (await db.execute(select(Chat))).scalars().all() == []

    async def test_message_store_failures_are_not_fatal(self, orchestrator):
        defer = Deferred()
        with patch("mindease.assistant.conversation.add_message", AsyncMock(side_effect=RuntimeError("db down"))):
            reply = await orchestrator.handle("user-1", _request(("hi", True)), defer)
        assert reply.text == "I'm here for you."
        assert len(defer.calls) == 1

    async def test_chat_creation_failure_is_fatal(self, orchestrator, fake_llm):
        with patch("mindease.assistant.conversation.create_chat", AsyncMock(side_effect=RuntimeError("db down"))):
            with pytest.raises(PersistenceError) as exc:
                await orchestrator.handle("user-1", _request(("hi", True)), Deferred())
        assert exc.value.code == "CHAT_CREATE_FAILED"
        assert fake_llm.calls == []

    @pytest.mark.parametrize("answer", ["", "   "])
    async def test_empty_completion_is_fatal(self, orchestrator, fake_llm, session_factory, answer):
        fake_llm.reply = answer
        defer = Deferred()
        with pytest.raises(UpstreamError) as exc:
            await orchestrator.handle("user-1", _request(("hi", True)), defer)
        assert exc.value.code == "EMPTY_COMPLETION"
        assert defer.calls == []
        assert [m.role for m in await _messages(session_factory)] == ["user"]

    async def test_completion_failure_is_generic(self, orchestrator, fake_llm, llm_down):
        fake_llm.reply = llm_down
        with pytest.raises(UpstreamError) as exc:
            await orchestrator.handle("user-1", _request(("hi", True)), Deferred())
        assert "boom" not in exc.value.message
        assert "Groq" not in exc.value.message


class TestModelMessages:
    def test_history_mapped_with_system_first(self):
        req = _request(("hello", True), ("hi, how are you?", False), ("tired", True), language="ru")
        msgs = build_model_messages(req)
        assert msgs[0]["role"] == "system"
        assert "на русском языке" in msgs[0]["content"]
        assert msgs[1:] == [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi, how are you?"},
            {"role": "user", "content": "tired"},
        ]

    def test_empty_history_turns_dropped(self):
        req = _request(("<script>x</script>", True), ("ok", False), ("hi", True))
        assert [m["content"] for m in build_model_messages(req)[1:]] == ["ok", "hi"]

    async def test_generation_parameters(self, orchestrator, fake_llm):
        await orchestrator.handle("user-1", _request(("hi", True)), Deferred())
        call = fake_llm.calls_of("reply")[0]
        assert call["max_tokens"] == 500
        assert call["temperature"] == 0.7


class TestSessionUse:
    async def test_no_session_open_during_model_call(self, fake_llm, session_factory):
        open_sessions = {"n": 0}

        @asynccontextmanager
        async def counting_factory():
            async with session_factory() as db:
                open_sessions["n"] += 1
                try:
                    yield db
                finally:
                    open_sessions["n"] -= 1

        seen = []
        complete = fake_llm.complete

        async def watching_complete(messages, **kwargs):
            seen.append(open_sessions["n"])
            return await complete(messages, **kwargs)

        fake_llm.complete = watching_complete
        orchestrator = ConversationOrchestrator(
            fake_llm, counting_factory, MoodScorer(fake_llm, session_factory)
        )

        reply = await orchestrator.handle("user-1", _request(("hi", True)), Deferred())

        assert seen == [0]
        assert open_sessions["n"] == 0
        assert [m.role for m in await _messages(session_factory)] == ["user", "assistant"]
        assert reply.text == "I'm here for you."
