import asyncio

from hllvip.jobs import PeriodicJob


def test_overlapping_firing_is_skipped():
    started = []

    async def scenario():
        release = asyncio.Event()

        async def slow_run():
            started.append(True)
            await release.wait()

        job = PeriodicJob("slow", slow_run, interval=3600, initial_delay=0)
        assert job.trigger() is True
        await asyncio.sleep(0)
        assert job.in_flight
        assert job.trigger() is False
        assert await job.run_once() is False
        release.set()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        return job

    job = asyncio.run(scenario())

    assert started == [True]
    assert job.skipped == 2
    assert job.runs == 1
    assert job.in_flight is False


def test_failing_run_is_logged_and_cleared():
    async def broken():
        raise RuntimeError("boom")

    job = PeriodicJob("broken", broken)

    assert asyncio.run(job.run_once()) is True
    assert job.in_flight is False
    assert job.runs == 0


def test_loop_waits_initial_delay_then_runs():
    calls = []

    async def scenario():
        async def tick():
            calls.append(True)

        job = PeriodicJob("tick", tick, interval=3600, initial_delay=0)
        job.start()
        for _ in range(5):
            await asyncio.sleep(0)
        await job.stop()

    asyncio.run(scenario())

    assert calls == [True]


def test_same_tick_firings_start_a_single_run_that_stop_cancels():
    started = []

    async def scenario():
        release = asyncio.Event()

        async def slow_run():
            started.append(True)
            await release.wait()

        job = PeriodicJob("leaderboard-refresh", slow_run)
        fired = (job.trigger(), job.trigger())
        await asyncio.sleep(0)
        pending = list(job.run_tasks)
        await job.stop()
        return job, fired, pending

    job, fired, pending = asyncio.run(scenario())

    assert fired == (True, False)
    assert started == [True]
    assert len(pending) == 1
    assert pending[0].cancelled()
    assert job.skipped == 1
    assert job.runs == 0
    assert job.in_flight is False
