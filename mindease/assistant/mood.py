"""
Scores the emotional valence of a user message.
What it does:
- Asks the model for a single 1-10 number
- Pulls the first integer out of whatever the model said
- Drops anything outside 1..10
- Stores a MoodEntry tagged as auto-generated

And, the main purpose:
Best-effort mood tracking that can never break a conversation turn.
"""


import asyncio
import re

from sqlalchemy.ext.asyncio import async_sessionmaker

from mindease.core.logging import get_logger
from mindease.core.sanitize import strip_angle_brackets
from mindease.db.models import MoodEntry
from mindease.db.repo import add_mood_entry
from mindease.llm.prompts import mood_system_prompt

log = get_logger("assistant.mood")

NOTE_PREFIX = "Auto-generated from message: "
NOTE_EXCERPT_LEN = 100

_DIGITS = re.compile(r"\d+")


def parse_mood_score(text: str) -> int | None:
    m = _DIGITS.search(text or "")
    if not m:
        return None
    score = int(m.group(0))
    if 1 <= score <= 10:
        return score
    return None


def mood_note(message: str) -> str:
    excerpt = strip_angle_brackets((message or "")[:NOTE_EXCERPT_LEN])
    return f'{NOTE_PREFIX}"{excerpt}"'


class MoodScorer:
    def __init__(self, llm, session_factory: async_sessionmaker, max_concurrency: int = 4):
        self.llm = llm
        self.session_factory = session_factory
        self._slots = asyncio.Semaphore(max(1, max_concurrency))

    async def score(self, text: str, language: str = "en") -> int | None:
        raw = await self.llm.complete(
            [
                {"role": "system", "content": mood_system_prompt(language)},
                {"role": "user", "content": text},
            ],
            temperature=0.3,
            max_tokens=10,
            top_p=1.0,
        )
        score = parse_mood_score(raw)
        if score is None:
            log.info(f"mood score discarded, model said {raw[:20]!r}")
        return score

    async def record(self, user_id: str, text: str, language: str = "en") -> MoodEntry | None:
        """Score `text` and store the entry. Never raises."""
        async with self._slots:
            try:
                score = await self.score(text, language)
                if score is None:
                    return None
                async with self.session_factory() as db:
                    entry = MoodEntry(user_id=user_id, score=score, note=mood_note(text))
                    return await add_mood_entry(db, entry)
            except Exception:
                log.exception(f"mood scoring failed for user {user_id}")
                return None
