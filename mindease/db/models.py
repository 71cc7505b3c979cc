"""
Database table definitions and it stores:
- Chats and their messages
- Mood entries
- Daily tasks
- Rate limit windows (only when RATE_LIMIT_BACKEND=sql)
Main purpose:
Define persistent data structure.
"""



from sqlalchemy import String, Text, Integer, BigInteger, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from mindease.core.ids import new_id, utcnow
from mindease.db.base import Base

class Chat(Base):
    __tablename__ = "chats"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    messages = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

class ChatMessage(Base):
    __tablename__ = "messages"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    chat_id: Mapped[str] = mapped_column(String, ForeignKey("chats.id", ondelete="CASCADE"), index=True)
    role: Mapped[str] = mapped_column(String)  # user|assistant
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    chat = relationship("Chat", back_populates="messages")
Index("ix_messages_chat_created", ChatMessage.chat_id, ChatMessage.created_at)

class MoodEntry(Base):
    __tablename__ = "mood_entries"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String, index=True)
    score: Mapped[int] = mapped_column(Integer)  # 1-10
    note: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Task(Base):
    __tablename__ = "tasks"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str] = mapped_column(String(500))
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": self.created_at.isoformat(),
        }
Index("ix_tasks_user_created", Task.user_id, Task.created_at)

class RateRecord(Base):
    __tablename__ = "rate_records"
    key: Mapped[str] = mapped_column(String, primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=1)
    reset_at: Mapped[int] = mapped_column(BigInteger, index=True)  # epoch ms
