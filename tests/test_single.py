import typing as tp

import anyio
import pytest

from shuttle import (
    CanceledError,
    ConfigurationError,
    ParallelPipeline,
    RequestHandle,
    SingleFlightController,
    SingleOptions,
    SingleType,
    parse_single,
)
from shuttle._single import PREVIOUS_NOT_COMPLETED_MESSAGE, SUPERSEDED_MESSAGE


class Sender:
    """Dispatches numbered calls through a pipeline and tracks how many overlap."""

    def __init__(self, pipeline: ParallelPipeline, delay: float = 0.01) -> None:
        self.pipeline = pipeline
        self.delay = delay
        self.started: tp.List[int] = []
        self.active = 0
        self.peak = 0

    def __call__(self, index: int) -> tp.Callable[[], RequestHandle[int]]:
        async def work() -> int:
            self.started.append(index)
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                await anyio.sleep(self.delay)
            finally:
                self.active -= 1
            return index

        def send() -> RequestHandle[int]:
            task = self.pipeline.add(work)
            return RequestHandle(task.deferred, task.cancel)

        return send


QUEUE = SingleOptions(SingleType.QUEUE)
NEXT = SingleOptions(SingleType.NEXT)
PREV = SingleOptions(SingleType.PREV)


@pytest.mark.anyio
async def test_queue_runs_one_call_per_key_at_a_time() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        handles = [single.request("GET::/users", QUEUE, sender(index)) for index in range(3)]

        assert single.queued_keys == {"GET::/users"}
        assert [await handle for handle in handles] == [0, 1, 2]

    assert sender.started == [0, 1, 2]
    assert sender.peak == 1
    assert single.is_idle()


@pytest.mark.anyio
async def test_queue_keys_are_independent() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        first = single.request("GET::/users", QUEUE, sender(0))
        second = single.request("GET::/groups", QUEUE, sender(1))
        await first
        await second

    assert sender.peak == 2


@pytest.mark.anyio
async def test_abort_queued_call_never_dispatches_it() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        first = single.request("GET::/users", QUEUE, sender(0))
        second = single.request("GET::/users", QUEUE, sender(1))
        second.abort()

        assert await first == 0
        with pytest.raises(CanceledError):
            await second

    assert sender.started == [0]
    assert single.is_idle()


@pytest.mark.anyio
async def test_abort_call_in_flight_in_queue() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline, delay=10)

        handle = single.request("GET::/users", QUEUE, sender(0))
        await anyio.sleep(0.01)
        handle.abort()

        with pytest.raises(CanceledError):
            await handle

    assert sender.started == [0]
    assert pipeline.is_empty()
    assert single.is_idle()


@pytest.mark.anyio
async def test_next_supersedes_the_call_in_flight() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        first = single.request("GET::/search", NEXT, sender(0))
        second = single.request("GET::/search", NEXT, sender(1))

        with pytest.raises(CanceledError, match=SUPERSEDED_MESSAGE):
            await first
        assert await second == 1

    assert single.is_idle()


@pytest.mark.anyio
async def test_next_slot_is_kept_by_the_latest_call() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        first = single.request("GET::/search", NEXT, sender(0))
        second = single.request("GET::/search", NEXT, sender(1))

        with pytest.raises(CanceledError):
            await first
        assert single.next_keys == {"GET::/search"}

        third = single.request("GET::/search", NEXT, sender(2))

        with pytest.raises(CanceledError, match=SUPERSEDED_MESSAGE):
            await second
        assert await third == 2


@pytest.mark.anyio
async def test_prev_rejects_newcomers_while_in_flight() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        first = single.request("POST::/orders", PREV, sender(0))
        second = single.request("POST::/orders", PREV, sender(1))

        assert second.done()
        with pytest.raises(CanceledError, match=PREVIOUS_NOT_COMPLETED_MESSAGE):
            await second
        assert await first == 0

        third = single.request("POST::/orders", PREV, sender(2))
        assert await third == 2

    assert sender.started == [0, 2]
    assert single.is_idle()


@pytest.mark.anyio
async def test_prev_releases_the_key_after_a_failure() -> None:
    async def fail() -> int:
        raise ValueError("boom")

    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)

        def send() -> RequestHandle[int]:
            task = pipeline.add(fail)
            return RequestHandle(task.deferred, task.cancel)

        with pytest.raises(ValueError):
            await single.request("POST::/orders", PREV, send)

        assert single.prev_keys == frozenset()


@pytest.mark.anyio
async def test_disabled_policy_dispatches_directly() -> None:
    async with anyio.create_task_group() as task_group:
        pipeline = ParallelPipeline(5, task_group)
        single = SingleFlightController(pipeline)
        sender = Sender(pipeline)

        handles = [single.request("GET::/users", None, sender(index)) for index in range(3)]
        for handle in handles:
            await handle

    assert sender.peak == 3
    assert single.is_idle()


def test_parse_single() -> None:
    assert parse_single(None) == QUEUE
    assert parse_single(True) == QUEUE
    assert parse_single(False) is None
    assert parse_single("NEXT") == NEXT
    assert parse_single(SingleType.PREV) == PREV
    assert parse_single({"type": "prev"}) == PREV

    with pytest.raises(ConfigurationError):
        parse_single("latest")
    with pytest.raises(ConfigurationError):
        parse_single({"kind": "next"})
