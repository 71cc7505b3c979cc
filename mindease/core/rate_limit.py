"""
Fixed-window rate limiting for the generation endpoints.

What it does:
- Counts requests per (policy, client identifier) inside a time window
- Rejects once the window's budget is spent, reporting when it resets
- Sweeps expired windows on a small random fraction of calls

The table lives behind a RateStore so a single process can keep it in memory
and several processes can share it through the database.
"""

from __future__ import annotations

import asyncio
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from mindease.core.logging import get_logger
from mindease.db.models import RateRecord

log = get_logger("core.rate_limit")


@dataclass(frozen=True)
class RatePolicy:
    name: str
    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    reset_at: int  # epoch ms
    limit: int

    def retry_after(self, now_ms: int) -> int:
        """Whole seconds until the window resets, never below 1."""
        return max(1, -(-(self.reset_at - now_ms) // 1000))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class RateStore(Protocol):
    async def hit(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> tuple[bool, int, int]:
        """Record one request. Returns (allowed, count, reset_at)."""
        ...

    async def sweep(self, now_ms: int) -> int:
        """Evict expired windows. Returns how many were removed."""
        ...


class InMemoryRateStore:
    """Single-process store. The read-modify-write holds a lock and never awaits."""

    def __init__(self):
        self._records: dict[str, list[int]] = {}  # key -> [count, reset_at]
        self._lock = threading.Lock()

    async def hit(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> tuple[bool, int, int]:
        with self._lock:
            rec = self._records.get(key)
            if rec is None or rec[1] <= now_ms:
                rec = [1, now_ms + window_ms]
                self._records[key] = rec
                return True, 1, rec[1]
            if rec[0] >= max_requests:
                return False, rec[0], rec[1]
            rec[0] += 1
            return True, rec[0], rec[1]

    async def sweep(self, now_ms: int) -> int:
        with self._lock:
            expired = [k for k, rec in self._records.items() if rec[1] <= now_ms]
            for k in expired:
                del self._records[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class SqlRateStore:
    """
    Shared store on the rate_records table.

    Admission is a conditional UPDATE (count < max and window still open), so
    concurrent writers, even in different processes, cannot push a window past
    its budget. A lost insert race falls back to the update path. Within one
    process hits are serialized so SQLite writers do not contend for its lock.
    """

    def __init__(self, session_factory: async_sessionmaker, max_attempts: int = 3):
        self.session_factory = session_factory
        self.max_attempts = max_attempts
        self._lock = asyncio.Lock()

    async def hit(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> tuple[bool, int, int]:
        async with self._lock:
            return await self._hit(key, now_ms, window_ms, max_requests)

    async def _hit(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> tuple[bool, int, int]:
        async with self.session_factory() as db:
            for _ in range(self.max_attempts):
                res = await db.execute(
                    update(RateRecord)
                    .where(
                        RateRecord.key == key,
                        RateRecord.reset_at > now_ms,
                        RateRecord.count < max_requests,
                    )
                    .values(count=RateRecord.count + 1)
                )
                if res.rowcount == 1:
                    await db.commit()
                    rec = await self._get(db, key)
                    return True, rec.count, rec.reset_at

                res = await db.execute(
                    update(RateRecord)
                    .where(RateRecord.key == key, RateRecord.reset_at <= now_ms)
                    .values(count=1, reset_at=now_ms + window_ms)
                )
                if res.rowcount == 1:
                    await db.commit()
                    return True, 1, now_ms + window_ms

                rec = await self._get(db, key)
                if rec is not None:
                    await db.commit()
                    if rec.reset_at > now_ms and rec.count >= max_requests:
                        return False, rec.count, rec.reset_at
                    # window changed between statements, go around again
                    continue

                db.add(RateRecord(key=key, count=1, reset_at=now_ms + window_ms))
                try:
                    await db.commit()
                    return True, 1, now_ms + window_ms
                except IntegrityError:
                    await db.rollback()
                    log.info(f"rate record insert race for {key}, retrying")

        raise RuntimeError(f"rate store could not settle window for {key}")

    async def _get(self, db, key: str) -> RateRecord | None:
        res = await db.execute(
            select(RateRecord).where(RateRecord.key == key).execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def sweep(self, now_ms: int) -> int:
        async with self.session_factory() as db:
            res = await db.execute(delete(RateRecord).where(RateRecord.reset_at <= now_ms))
            await db.commit()
            return res.rowcount or 0


class RateGovernor:
    def __init__(
        self,
        store: RateStore,
        *,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
        cleanup_probability: float = 0.01,
    ):
        self.store = store
        self.clock = clock
        self.rng = rng
        self.cleanup_probability = cleanup_probability

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def admit(self, identifier: str, policy: RatePolicy) -> RateDecision:
        now = self.now_ms()
        if self.rng() < self.cleanup_probability:
            removed = await self.store.sweep(now)
            if removed:
                log.debug(f"swept {removed} expired rate windows")

        key = f"{policy.name}:{identifier}"
        allowed, count, reset_at = await self.store.hit(key, now, policy.window_ms, policy.max_requests)
        if not allowed:
            log.info(f"rate limit hit policy={policy.name} count={count}")
            return RateDecision(False, 0, reset_at, policy.max_requests)
        return RateDecision(True, max(0, policy.max_requests - count), reset_at, policy.max_requests)


def client_identifier(headers, client_host: str | None) -> str:
    """Network address plus user agent; the first X-Forwarded-For hop wins."""
    forwarded = headers.get("x-forwarded-for")
    ip = ""
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    if not ip:
        ip = headers.get("x-real-ip") or client_host or "unknown"
    ua = headers.get("user-agent") or "unknown"
    return f"{ip}-{ua}"
