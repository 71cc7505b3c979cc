# mindease/db/repo.py

from datetime import datetime

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from mindease.db.models import Chat, ChatMessage, MoodEntry, Task


async def create_chat(db: AsyncSession, user_id: str) -> Chat:
    chat = Chat(user_id=user_id)
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    return chat


async def get_chat(db: AsyncSession, chat_id: str) -> Chat | None:
    res = await db.execute(select(Chat).where(Chat.id == chat_id))
    return res.scalar_one_or_none()


async def get_latest_chat(db: AsyncSession, user_id: str) -> Chat | None:
    res = await db.execute(
        select(Chat).where(Chat.user_id == user_id).order_by(Chat.created_at.desc()).limit(1)
    )
    return res.scalar_one_or_none()


async def delete_chat(db: AsyncSession, chat: Chat) -> None:
    # messages go with it through the FK cascade
    await db.delete(chat)
    await db.commit()


async def add_message(db: AsyncSession, chat_id: str, role: str, content: str) -> ChatMessage:
    msg = ChatMessage(chat_id=chat_id, role=role, content=content)
    db.add(msg)
    await db.commit()
    await db.refresh(msg)
    return msg


async def list_recent_messages(db: AsyncSession, chat_id: str, limit: int) -> list[ChatMessage]:
    """Newest `limit` messages of a chat, returned oldest first."""
    res = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.chat_id == chat_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
    )
    return list(reversed(res.scalars().all()))


async def list_chat_messages(db: AsyncSession, chat_id: str) -> list[ChatMessage]:
    res = await db.execute(
        select(ChatMessage).where(ChatMessage.chat_id == chat_id).order_by(ChatMessage.created_at)
    )
    return list(res.scalars().all())


async def list_recent_chats(db: AsyncSession, user_id: str, limit: int) -> list[tuple[Chat, str | None]]:
    """
    Newest `limit` chats of a user, newest first, each paired with the first
    user message's content (None for a chat with no user message yet).
    """
    res = await db.execute(
        select(Chat).where(Chat.user_id == user_id).order_by(Chat.created_at.desc()).limit(limit)
    )
    chats = list(res.scalars().all())
    if not chats:
        return []

    res = await db.execute(
        select(ChatMessage.chat_id, ChatMessage.content)
        .where(ChatMessage.chat_id.in_([c.id for c in chats]), ChatMessage.role == "user")
        .order_by(ChatMessage.created_at)
    )
    first: dict[str, str] = {}
    for chat_id, content in res.all():
        first.setdefault(chat_id, content)
    return [(c, first.get(c.id)) for c in chats]


async def add_mood_entry(db: AsyncSession, entry: MoodEntry) -> MoodEntry:
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def list_recent_moods(db: AsyncSession, user_id: str, limit: int) -> list[MoodEntry]:
    """Newest `limit` mood entries, returned oldest first."""
    res = await db.execute(
        select(MoodEntry)
        .where(MoodEntry.user_id == user_id)
        .order_by(MoodEntry.created_at.desc())
        .limit(limit)
    )
    return list(reversed(res.scalars().all()))


async def list_tasks_between(db: AsyncSession, user_id: str, start: datetime, end: datetime) -> list[Task]:
    res = await db.execute(
        select(Task)
        .where(Task.user_id == user_id, Task.created_at >= start, Task.created_at < end)
        .order_by(Task.created_at)
    )
    return list(res.scalars().all())


async def replace_tasks_between(
    db: AsyncSession,
    user_id: str,
    start: datetime,
    end: datetime,
    titles: list[str],
) -> list[Task]:
    """
    Delete the user's tasks in [start, end) and insert `titles` as new tasks.
    Both happen in one commit; on failure the deletion is rolled back too.
    """
    try:
        await db.execute(
            delete(Task).where(Task.user_id == user_id, Task.created_at >= start, Task.created_at < end)
        )
        tasks = [Task(user_id=user_id, title=title, completed=False) for title in titles]
        db.add_all(tasks)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    for t in tasks:
        await db.refresh(t)
    return tasks


async def get_task(db: AsyncSession, task_id: str) -> Task | None:
    res = await db.execute(select(Task).where(Task.id == task_id))
    return res.scalar_one_or_none()


async def update_task(db: AsyncSession, task: Task) -> Task:
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


async def purge_user_data(db: AsyncSession, user_id: str) -> None:
    chat_ids = select(Chat.id).where(Chat.user_id == user_id)
    await db.execute(delete(ChatMessage).where(ChatMessage.chat_id.in_(chat_ids)))
    await db.execute(delete(Chat).where(Chat.user_id == user_id))
    await db.execute(delete(MoodEntry).where(MoodEntry.user_id == user_id))
    await db.execute(delete(Task).where(Task.user_id == user_id))
    await db.commit()
