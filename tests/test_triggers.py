"""TriggerQueue 测试。

测试合并（coalescing）语义：
- 连续多次 notify() 只产生一个 token
- next() 阻塞直到有 token
"""

from __future__ import annotations

import asyncio

import pytest

from cli_watch.triggers import TriggerQueue


class TestNotify:
    """notify() 测试。"""

    def test_first_notify_enqueues(self):
        """第一次 notify 入队。"""
        queue = TriggerQueue()
        assert queue.pending is False
        assert queue.notify() is True
        assert queue.pending is True

    def test_burst_coalesces(self):
        """已有 token 时 notify 为空操作。"""
        queue = TriggerQueue()
        results = [queue.notify() for _ in range(10)]
        assert results == [True] + [False] * 9
        assert queue.pending is True


class TestNext:
    """next() 测试。"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("burst", [1, 2, 50])
    async def test_burst_yields_one_token(self, burst: int):
        """N 次 notify 之后只能消费一个 token。"""
        queue = TriggerQueue()
        for _ in range(burst):
            queue.notify()

        await asyncio.wait_for(queue.next(), timeout=1)
        assert queue.pending is False

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(queue.next(), timeout=0.05)

    @pytest.mark.asyncio
    async def test_next_waits_for_notify(self):
        """next() 挂起直到 notify。"""
        queue = TriggerQueue()
        waiter = asyncio.create_task(queue.next())

        await asyncio.sleep(0.01)
        assert not waiter.done()

        queue.notify()
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_notify_after_consume_enqueues_again(self):
        """消费后再次 notify 会产生新 token。"""
        queue = TriggerQueue()
        queue.notify()
        await queue.next()

        assert queue.notify() is True
        await asyncio.wait_for(queue.next(), timeout=1)
