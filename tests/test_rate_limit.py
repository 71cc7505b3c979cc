"""Tests for the fixed-window rate governor and its stores."""

import asyncio

import pytest

from mindease.core.rate_limit import (
    InMemoryRateStore,
    RateDecision,
    RateGovernor,
    RatePolicy,
    SqlRateStore,
    client_identifier,
)

CHAT = RatePolicy("chat", window_ms=60_000, max_requests=20)
TASKS = RatePolicy("tasks", window_ms=60_000, max_requests=10)


def _governor(clock, store=None, rng=lambda: 1.0) -> RateGovernor:
    return RateGovernor(store if store is not None else InMemoryRateStore(), clock=clock, rng=rng)


class TestAdmission:
    async def test_first_request_opens_window(self, clock):
        gov = _governor(clock)
        d = await gov.admit("1.2.3.4-ua", CHAT)
        assert d.allowed
        assert d.remaining == 19
        assert d.reset_at == gov.now_ms() + 60_000
        assert d.limit == 20

    async def test_exactly_max_admitted_then_rejected(self, clock):
        gov = _governor(clock)
        decisions = [await gov.admit("client", CHAT) for _ in range(21)]

        assert all(d.allowed for d in decisions[:20])
        assert [d.remaining for d in decisions[:20]] == list(range(19, -1, -1))
        rejected = decisions[20]
        assert not rejected.allowed
        assert rejected.remaining == 0
        assert rejected.reset_at == decisions[0].reset_at

    async def test_window_resets_after_reset_at(self, clock):
        gov = _governor(clock)
        for _ in range(20):
            await gov.admit("client", CHAT)
        assert not (await gov.admit("client", CHAT)).allowed

        clock.advance(60.001)
        d = await gov.admit("client", CHAT)
        assert d.allowed
        assert d.remaining == 19
        assert d.reset_at == gov.now_ms() + 60_000

    async def test_still_blocked_just_before_reset(self, clock):
        gov = _governor(clock)
        for _ in range(20):
            await gov.admit("client", CHAT)
        clock.advance(59.5)
        assert not (await gov.admit("client", CHAT)).allowed

    async def test_policies_do_not_share_counters(self, clock):
        gov = _governor(clock)
        for _ in range(10):
            assert (await gov.admit("client", TASKS)).allowed
        assert not (await gov.admit("client", TASKS)).allowed

        d = await gov.admit("client", CHAT)
        assert d.allowed
        assert d.remaining == 19

    async def test_identifiers_do_not_share_counters(self, clock):
        gov = _governor(clock)
        for _ in range(10):
            await gov.admit("a", TASKS)
        assert (await gov.admit("b", TASKS)).allowed

    async def test_concurrent_admissions_never_overshoot(self, clock):
        gov = _governor(clock)
        decisions = await asyncio.gather(*(gov.admit("client", CHAT) for _ in range(50)))
        assert sum(d.allowed for d in decisions) == 20


class TestSweep:
    async def test_empty_store_is_the_one_used(self, clock):
        store = InMemoryRateStore()
        gov = _governor(clock, store)
        assert gov.store is store
        await gov.admit("a", CHAT)
        assert len(store) == 1

    async def test_expired_windows_evicted_on_sweep(self, clock):
        store = InMemoryRateStore()
        sweep_now = {"on": False}
        gov = _governor(clock, store, rng=lambda: 0.0 if sweep_now["on"] else 1.0)

        await gov.admit("a", CHAT)
        await gov.admit("b", CHAT)
        assert len(store) == 2

        clock.advance(61)
        sweep_now["on"] = True
        await gov.admit("c", CHAT)
        assert len(store) == 1

    async def test_live_windows_survive_sweep(self, clock):
        store = InMemoryRateStore()
        gov = _governor(clock, store, rng=lambda: 0.0)
        await gov.admit("a", CHAT)
        clock.advance(30)
        await gov.admit("b", CHAT)
        assert len(store) == 2


class TestSqlStore:
    async def test_budget_and_reset(self, clock, session_factory):
        gov = _governor(clock, SqlRateStore(session_factory))
        decisions = [await gov.admit("client", TASKS) for _ in range(11)]
        assert all(d.allowed for d in decisions[:10])
        assert decisions[9].remaining == 0
        assert not decisions[10].allowed
        assert decisions[10].reset_at == decisions[0].reset_at

        clock.advance(61)
        d = await gov.admit("client", TASKS)
        assert d.allowed
        assert d.remaining == 9

    async def test_concurrent_admissions_never_overshoot(self, clock, session_factory):
        gov = _governor(clock, SqlRateStore(session_factory))
        decisions = await asyncio.gather(*(gov.admit("client", TASKS) for _ in range(25)))
        assert sum(d.allowed for d in decisions) == 10

    async def test_sweep_deletes_expired_rows(self, clock, session_factory):
        store = SqlRateStore(session_factory)
        gov = _governor(clock, store)
        await gov.admit("a", TASKS)
        clock.advance(61)
        assert await store.sweep(gov.now_ms()) == 1
        assert await store.sweep(gov.now_ms()) == 0


class TestDecision:
    @pytest.mark.parametrize(
        "reset_in_ms, expected",
        [(60_000, 60), (59_001, 60), (1, 1), (0, 1), (-5, 1)],
    )
    def test_retry_after_rounds_up(self, reset_in_ms, expected):
        d = RateDecision(False, 0, 1_000_000 + reset_in_ms, 20)
        assert d.retry_after(1_000_000) == expected

    def test_headers(self):
        d = RateDecision(True, 7, 123456, 20)
        assert d.headers() == {
            "X-RateLimit-Limit": "20",
            "X-RateLimit-Remaining": "7",
            "X-RateLimit-Reset": "123456",
        }


class TestClientIdentifier:
    def test_forwarded_for_first_hop(self):
        headers = {"x-forwarded-for": "9.9.9.9, 10.0.0.1", "user-agent": "Firefox"}
        assert client_identifier(headers, "127.0.0.1") == "9.9.9.9-Firefox"

    def test_real_ip_then_socket(self):
        assert client_identifier({"x-real-ip": "8.8.8.8"}, "127.0.0.1") == "8.8.8.8-unknown"
        assert client_identifier({"user-agent": "curl"}, "127.0.0.1") == "127.0.0.1-curl"

    def test_nothing_known(self):
        assert client_identifier({}, None) == "unknown-unknown"
