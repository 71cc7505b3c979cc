"""
Creates the user's task list for today.
What it does:
- Builds a localized digest of recent moods and recent chat turns
- Asks the model for a JSON array of 3-5 short tasks
- Parses the answer through a fallback chain (JSON span, whole JSON, bullet lines)
- Cleans the titles and replaces today's tasks with the new set

And, the main purpose:
Turn mood history and conversation context into a small actionable plan.
"""


import asyncio
import weakref
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import async_sessionmaker

from mindease.core.errors import PersistenceError, UpstreamError
from mindease.core.logging import get_logger
from mindease.db.models import Task
from mindease.db.repo import get_latest_chat, list_recent_messages, list_recent_moods, replace_tasks_between
from mindease.llm.client import LLMError
from mindease.llm.json_parse import clean_task_titles, parse_task_list
from mindease.llm.prompts import t, tasks_system_prompt

log = get_logger("assistant.tasks")

MOOD_CONTEXT_LIMIT = 7
MESSAGE_CONTEXT_LIMIT = 10


def _zone(tz_name: str):
    if (tz_name or "UTC").upper() == "UTC":
        return timezone.utc
    return ZoneInfo(tz_name)


def today_bounds(tz_name: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """[start, end) of the current calendar day in tz_name, as naive UTC."""
    tz = _zone(tz_name)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    start = datetime.combine(local_now.date(), time.min, tzinfo=tz)
    end = datetime.combine(local_now.date() + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def format_context(moods, messages, language: str) -> str:
    if moods:
        mood_summary = "\n".join(
            t("ctx.mood_line", language, score=m.score, at=m.created_at.isoformat()) for m in moods
        )
    else:
        mood_summary = t("ctx.no_moods", language)

    if messages:
        chat_context = "\n".join(
            f"{t('ctx.user' if m.role == 'user' else 'ctx.assistant', language)}: {m.content}"
            for m in messages
        )
    else:
        chat_context = t("ctx.no_messages", language)

    return (
        f"{t('ctx.header', language)}\n\n"
        f"{t('ctx.moods', language)}\n{mood_summary}\n\n"
        f"{t('ctx.messages', language)}\n{chat_context}\n\n"
        f"{t('ctx.request', language)}"
    )


class TaskGenerator:
    def __init__(self, llm, session_factory: async_sessionmaker, tz_name: str = "UTC"):
        self.llm = llm
        self.session_factory = session_factory
        self.tz_name = tz_name
        # one replacement at a time per user; entries go away with their last holder
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def build_context(self, user_id: str, language: str) -> str:
        moods, messages = [], []
        async with self.session_factory() as db:
            try:
                moods = await list_recent_moods(db, user_id, MOOD_CONTEXT_LIMIT)
            except Exception:
                await db.rollback()
                log.exception(f"could not load mood entries for user {user_id}")
            try:
                chat = await get_latest_chat(db, user_id)
                if chat is not None:
                    messages = await list_recent_messages(db, chat.id, MESSAGE_CONTEXT_LIMIT)
            except Exception:
                await db.rollback()
                log.exception(f"could not load chat context for user {user_id}")
        return format_context(moods, messages, language)

    async def generate(self, user_id: str, language: str) -> list[Task]:
        context = await self.build_context(user_id, language)

        try:
            raw = await self.llm.complete(
                [
                    {"role": "system", "content": tasks_system_prompt(language)},
                    {"role": "user", "content": context},
                ],
                temperature=0.7,
                max_tokens=500,
                top_p=1.0,
            )
        except LLMError as e:
            log.error(f"task generation failed: {e}")
            raise UpstreamError(code="COMPLETION_FAILED")
        if not raw or not raw.strip():
            log.error("task generation returned an empty completion")
            raise UpstreamError(code="EMPTY_COMPLETION")

        candidates, parser = parse_task_list(raw)
        if parser != "parse_bracket_span":
            log.warning(f"task list parsed with {parser}; raw={raw[:200]!r}")
        titles = clean_task_titles(candidates)
        if not titles:
            # keep the existing tasks rather than replacing them with nothing
            raise UpstreamError(code="TASKS_UNPARSABLE")

        start, end = today_bounds(self.tz_name)
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            async with self.session_factory() as db:
                try:
                    return await replace_tasks_between(db, user_id, start, end, titles)
                except Exception:
                    log.exception(f"could not save tasks for user {user_id}")
                    raise PersistenceError("Could not save tasks", code="TASKS_SAVE_FAILED")
