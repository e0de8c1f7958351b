import asyncio

from helpdesk.shared.infrastructure.locks import KeyedLock


async def test_same_key_is_serialized():
    locks = KeyedLock("test")
    order = []

    async def worker(name):
        async with locks.hold(1):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


async def test_locks_are_released_when_idle():
    locks = KeyedLock("test")

    async with locks.hold("x"):
        async with locks.hold("y"):
            assert len(locks) == 2

    assert len(locks) == 0
