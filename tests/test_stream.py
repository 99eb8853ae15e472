"""Tests for EventStream and from_iterable — the concrete event sources."""

import asyncio

from asyncflows import EventSource, EventStream, Subscription, from_iterable


class TestEmitSubscribe:
    """Core emit/subscribe behavior."""

    def test_subscribe_receives_emitted_values(self):
        async def scenario():
            stream = EventStream()
            received = []
            stream.subscribe(received.append)
            await stream.emit(1)
            await stream.emit(2)
            assert received == [1, 2]

        asyncio.run(scenario())

    def test_multiple_subscribers(self):
        async def scenario():
            stream = EventStream()
            a, b = [], []
            stream.subscribe(a.append)
            stream.subscribe(b.append)
            await stream.emit("x")
            assert a == ["x"]
            assert b == ["x"]

        asyncio.run(scenario())

    def test_async_callbacks_are_awaited_in_order(self):
        async def scenario():
            stream = EventStream()
            log = []

            async def slow(v):
                log.append(("start", v))
                await asyncio.sleep(0)
                log.append(("end", v))

            stream.subscribe(slow)
            await stream.emit(1)
            await stream.emit(2)
            assert log == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]

        asyncio.run(scenario())

    def test_cancel(self):
        async def scenario():
            stream = EventStream()
            received = []
            sub = stream.subscribe(received.append)
            await stream.emit(1)
            sub.cancel()
            await stream.emit(2)
            assert received == [1]
            assert stream.subscriber_count == 0

        asyncio.run(scenario())

    def test_cancel_idempotent(self):
        stream = EventStream()
        sub = stream.subscribe(lambda v: None)
        sub.cancel()
        sub.cancel()  # should not raise
        assert not sub.active


class TestCloseAndError:
    def test_close_completes_subscribers(self):
        async def scenario():
            stream = EventStream()
            log = []
            stream.subscribe(log.append, lambda: log.append("done"))
            await stream.emit(1)
            await stream.close()
            await stream.emit(2)
            assert log == [1, "done"]
            assert stream.closed

        asyncio.run(scenario())

    def test_close_twice_completes_once(self):
        async def scenario():
            stream = EventStream()
            log = []
            stream.subscribe(log.append, lambda: log.append("done"))
            await stream.close()
            await stream.close()
            assert log == ["done"]

        asyncio.run(scenario())

    def test_subscribe_after_close_is_inert(self):
        async def scenario():
            stream = EventStream()
            await stream.close()
            sub = stream.subscribe(lambda v: None)
            assert not sub.active
            sub.cancel()

        asyncio.run(scenario())

    def test_error_keeps_stream_open(self):
        async def scenario():
            stream = EventStream()
            log = []
            stream.subscribe(log.append, on_error=lambda e: log.append(str(e)))
            await stream.error(ValueError("boom"))
            await stream.emit(1)
            assert log == ["boom", 1]

        asyncio.run(scenario())


class TestOperators:
    def test_map_transforms_values(self):
        async def scenario():
            stream = EventStream()
            doubled = stream.map(lambda v: v * 2)
            received = []
            doubled.subscribe(received.append)
            await stream.emit(3)
            await stream.emit(5)
            assert received == [6, 10]

        asyncio.run(scenario())

    def test_filter_then_map(self):
        async def scenario():
            stream = EventStream()
            result = stream.filter(lambda v: v > 0).map(lambda v: v * 10)
            received = []
            result.subscribe(received.append)
            await stream.emit(-1)
            await stream.emit(3)
            assert received == [30]

        asyncio.run(scenario())

    def test_close_propagates_downstream(self):
        async def scenario():
            stream = EventStream()
            child = stream.map(lambda v: v)
            log = []
            child.subscribe(log.append, lambda: log.append("done"))
            await stream.close()
            assert log == ["done"]
            assert child.closed

        asyncio.run(scenario())


class TestDispose:
    """dispose() tears down streams and children."""

    def test_emit_after_dispose_is_noop(self):
        async def scenario():
            stream = EventStream()
            received = []
            stream.subscribe(received.append)
            stream.dispose()
            await stream.emit(1)
            assert received == []

        asyncio.run(scenario())

    def test_dispose_propagates_to_children(self):
        parent = EventStream()
        child = parent.map(lambda v: v)
        grandchild = child.filter(lambda v: True)

        parent.dispose()

        assert child.closed
        assert grandchild.closed

    def test_child_dispose_does_not_affect_parent(self):
        async def scenario():
            parent = EventStream()
            child = parent.map(lambda v: v)
            received_parent = []
            parent.subscribe(received_parent.append)

            child.dispose()

            await parent.emit(1)
            assert received_parent == [1]
            assert not parent.closed

        asyncio.run(scenario())


class TestFromIterable:
    def test_emits_items_then_completes(self):
        async def scenario():
            log = []
            finished = asyncio.Event()
            from_iterable([1, 2, 3]).subscribe(log.append, finished.set)
            await asyncio.wait_for(finished.wait(), 1)
            assert log == [1, 2, 3]

        asyncio.run(scenario())

    def test_each_subscription_starts_over(self):
        async def scenario():
            source = from_iterable(["a", "b"])
            first, second = [], []
            done_first, done_second = asyncio.Event(), asyncio.Event()
            source.subscribe(first.append, done_first.set)
            source.subscribe(second.append, done_second.set)
            await asyncio.wait_for(done_first.wait(), 1)
            await asyncio.wait_for(done_second.wait(), 1)
            assert first == second == ["a", "b"]

        asyncio.run(scenario())

    def test_async_iterable(self):
        async def scenario():
            async def gen():
                for i in range(3):
                    await asyncio.sleep(0)
                    yield i

            log = []
            finished = asyncio.Event()
            from_iterable(gen()).subscribe(log.append, finished.set)
            await asyncio.wait_for(finished.wait(), 1)
            assert log == [0, 1, 2]

        asyncio.run(scenario())

    def test_failure_reports_then_completes(self):
        async def scenario():
            def items():
                yield 1
                raise ValueError("broken")

            log = []
            finished = asyncio.Event()
            from_iterable(items()).subscribe(
                log.append, finished.set, lambda e: log.append(str(e))
            )
            await asyncio.wait_for(finished.wait(), 1)
            assert log == [1, "broken"]

        asyncio.run(scenario())

    def test_callback_failure_is_not_a_source_error(self):
        async def scenario():
            log = []

            def on_event(value):
                log.append(value)
                raise RuntimeError("consumer bug")

            sub = from_iterable([1, 2, 3]).subscribe(
                on_event, lambda: log.append("done"), lambda e: log.append(("error", e))
            )
            while sub.active:
                await asyncio.sleep(0)
            assert log == [1]
            assert isinstance(sub._task.exception(), RuntimeError)
            await sub.cancel()  # does not re-raise

        asyncio.run(scenario())

    def test_cancel_stops_unbounded_source(self):
        async def scenario():
            async def forever():
                i = 0
                while True:
                    await asyncio.sleep(0)
                    yield i
                    i += 1

            log = []
            sub = from_iterable(forever()).subscribe(log.append, lambda: log.append("done"))
            while len(log) < 3:
                await asyncio.sleep(0)
            await sub.cancel()
            seen = len(log)
            for _ in range(5):
                await asyncio.sleep(0)
            assert len(log) == seen
            assert "done" not in log
            assert not sub.active
            await sub.cancel()  # idempotent

        asyncio.run(scenario())


class TestProtocols:
    def test_sources_satisfy_event_source(self):
        assert isinstance(EventStream(), EventSource)
        assert isinstance(from_iterable([]), EventSource)

    def test_stream_subscription_satisfies_subscription(self):
        sub = EventStream().subscribe(lambda v: None)
        assert isinstance(sub, Subscription)
