"""
Runs one chat turn end to end.
What it does:
- Resolves (or creates) the chat the turn belongs to
- Stores the user's message (best-effort)
- Asks the model for a reply in the pinned interface language
- Stores the reply (best-effort)
- Hands the user's message to the mood scorer after the reply is ready

And, the main purpose:
Turn a validated chat request into a stored exchange and a model reply.
"""


from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.ext.asyncio import async_sessionmaker

from mindease.api.types import ChatRequest
from mindease.assistant.mood import MoodScorer
from mindease.core.errors import ClientError, ForbiddenError, NotFoundError, PersistenceError, UpstreamError
from mindease.core.logging import get_logger
from mindease.core.sanitize import sanitize_text
from mindease.db.repo import add_message, create_chat, get_chat
from mindease.llm.client import LLMError
from mindease.llm.prompts import chat_system_prompt

log = get_logger("assistant.conversation")

# defer(fn, *args) schedules fn(*args) to run after the reply is returned
Defer = Callable[..., Any]


@dataclass
class ChatReply:
    text: str
    chat_id: str


def build_model_messages(req: ChatRequest) -> list[dict]:
    msgs = [{"role": "system", "content": chat_system_prompt(req.language)}]
    for turn in req.messages:
        content = sanitize_text(turn.text)
        if not content:
            continue
        msgs.append({"role": "user" if turn.isUser else "assistant", "content": content})
    return msgs


class ConversationOrchestrator:
    def __init__(self, llm, session_factory: async_sessionmaker, mood_scorer: MoodScorer):
        self.llm = llm
        self.session_factory = session_factory
        self.mood_scorer = mood_scorer

    async def handle(self, user_id: str, req: ChatRequest, defer: Defer) -> ChatReply:
        last = req.messages[-1]
        if not last.isUser:
            raise ClientError("Invalid message format", code="INVALID_MESSAGE_FORMAT")
        user_text = sanitize_text(last.text)
        if not user_text:
            raise ClientError("Message cannot be empty", code="EMPTY_MESSAGE")

        async with self.session_factory() as db:
            chat_id = await self._resolve_chat(db, user_id, req)

            try:
                await add_message(db, chat_id, "user", user_text)
            except Exception:
                await db.rollback()
                log.exception(f"could not store user message in chat {chat_id}")

        # no session is held while waiting on the model
        reply = await self._generate_reply(req)

        async with self.session_factory() as db:
            try:
                await add_message(db, chat_id, "assistant", reply)
            except Exception:
                await db.rollback()
                log.exception(f"could not store assistant message in chat {chat_id}")

        defer(self.mood_scorer.record, user_id, user_text, req.language)
        return ChatReply(text=reply, chat_id=chat_id)

    async def _resolve_chat(self, db, user_id: str, req: ChatRequest) -> str:
        if req.chatId is not None:
            chat = await get_chat(db, str(req.chatId))
            if chat is None:
                raise NotFoundError("Chat not found", code="CHAT_NOT_FOUND")
            if chat.user_id != user_id:
                raise ForbiddenError()
            return chat.id
        try:
            chat = await create_chat(db, user_id)
        except Exception:
            await db.rollback()
            log.exception(f"could not create chat for user {user_id}")
            raise PersistenceError("Could not create chat", code="CHAT_CREATE_FAILED")
        return chat.id

    async def _generate_reply(self, req: ChatRequest) -> str:
        try:
            text = await self.llm.complete(
                build_model_messages(req),
                temperature=0.7,
                max_tokens=500,
                top_p=1.0,
            )
        except LLMError as e:
            log.error(f"reply generation failed: {e}")
            raise UpstreamError(code="COMPLETION_FAILED")
        if not text or not text.strip():
            log.error("reply generation returned an empty completion")
            raise UpstreamError(code="EMPTY_COMPLETION")
        return text
