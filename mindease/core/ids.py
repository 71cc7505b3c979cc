import uuid
from datetime import datetime, timezone


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # naive UTC, matching what the store columns hold
    return datetime.now(timezone.utc).replace(tzinfo=None)

"""
ID and timestamp utilities & it provides:
- Chat, message, mood entry and task IDs (uuid4)
- Naive UTC timestamps for created_at columns

The main purpose:
Consistent identifier creation across system.
"""
