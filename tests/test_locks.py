"""Tests for per-key locking."""

import asyncio

from passkey_server.services.locks import KeyedLock


async def test_same_key_is_serialized():
    locks = KeyedLock()
    events = []

    async def step(name):
        async with locks.hold("alice"):
            events.append(f"{name}-in")
            await asyncio.sleep(0)
            events.append(f"{name}-out")

    await asyncio.gather(step("a"), step("b"))

    assert events == ["a-in", "a-out", "b-in", "b-out"]


async def test_different_keys_interleave():
    locks = KeyedLock()
    events = []

    async def step(key):
        async with locks.hold(key):
            events.append(f"{key}-in")
            await asyncio.sleep(0)
            events.append(f"{key}-out")

    await asyncio.gather(step("alice"), step("bob"))

    assert events[:2] == ["alice-in", "bob-in"]


async def test_lock_discarded_after_release():
    locks = KeyedLock()

    async with locks.hold("alice"):
        assert len(locks) == 1

    assert len(locks) == 0


async def test_lock_released_on_error():
    locks = KeyedLock()

    try:
        async with locks.hold("alice"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert len(locks) == 0
    async with locks.hold("alice"):
        pass
