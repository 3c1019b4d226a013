from __future__ import annotations

import asyncio
import random

from inverter_agent.utils.select import Selector


def test_ready_cases_are_chosen_fairly_without_losing_items():
    async def runner():
        first: asyncio.Queue[int] = asyncio.Queue()
        second: asyncio.Queue[int] = asyncio.Queue()
        for i in range(50):
            first.put_nowait(i)
            second.put_nowait(i)
        selector = Selector({"a": first.get, "b": second.get}, rng=random.Random(7))
        picks = [await selector.select() for _ in range(100)]
        await selector.aclose()
        return picks

    picks = asyncio.run(runner())
    assert [value for key, value in picks if key == "a"] == list(range(50))
    assert [value for key, value in picks if key == "b"] == list(range(50))
    assert {key for key, _ in picks[:20]} == {"a", "b"}


def test_waits_until_a_case_is_ready():
    async def runner():
        queue: asyncio.Queue[str] = asyncio.Queue()
        stop = asyncio.Event()
        selector = Selector({"item": queue.get, "stop": stop.wait})
        asyncio.get_running_loop().call_later(0.01, queue.put_nowait, "hello")
        picked = await selector.select()
        stop.set()
        stopped = await selector.select()
        await selector.aclose()
        return picked, stopped, queue.qsize()

    picked, stopped, remaining = asyncio.run(runner())
    assert picked == ("item", "hello")
    assert stopped == ("stop", True)
    assert remaining == 0


def test_ready_results_keeps_unchosen_values():
    async def runner():
        first: asyncio.Queue[int] = asyncio.Queue()
        second: asyncio.Queue[int] = asyncio.Queue()
        first.put_nowait(1)
        second.put_nowait(2)
        selector = Selector({"a": first.get, "b": second.get}, rng=random.Random(0))
        key, value = await selector.select()
        leftovers = selector.ready_results()
        await selector.aclose()
        return key, value, leftovers, selector.ready_results()

    key, value, leftovers, after_close = asyncio.run(runner())
    other = "b" if key == "a" else "a"
    assert leftovers == {other: 2 if other == "b" else 1}
    assert after_close == {}
