"""
Tests for the periodic HealthMonitor.
"""

import asyncio

import pytest

from connection_management import HealthCheckResult, HealthMonitor
from lifecycle_exceptions import ConfigurationError


class ResultSink:
    def __init__(self):
        self.results = []

    def __call__(self, result):
        self.results.append(result)


async def healthy_probe():
    return None


@pytest.mark.asyncio
async def test_check_once_healthy():
    sink = ResultSink()
    monitor = HealthMonitor(probe=healthy_probe, on_result=sink, interval=1.0, timeout=0.5)

    result = await monitor.check_once()

    assert result.healthy
    assert result.error is None
    assert result.latency >= 0
    assert sink.results == [result]
    assert monitor.last_result is result
    assert monitor.probe_count == 1


@pytest.mark.asyncio
async def test_failing_probe_is_reported_not_raised():
    async def probe():
        raise RuntimeError("server unavailable")

    sink = ResultSink()
    monitor = HealthMonitor(probe=probe, on_result=sink, interval=1.0, timeout=0.5)

    result = await monitor.check_once()

    assert not result.healthy
    assert result.error == "server unavailable"
    assert sink.results == [result]


@pytest.mark.asyncio
async def test_hung_probe_is_bounded_by_timeout():
    async def probe():
        await asyncio.sleep(5)

    monitor = HealthMonitor(probe=probe, on_result=ResultSink(), interval=1.0, timeout=0.05)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await monitor.check_once()

    assert loop.time() - started < 0.5
    assert not result.healthy
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_async_result_callback_is_awaited():
    delivered = []

    async def on_result(result):
        await asyncio.sleep(0)
        delivered.append(result)

    monitor = HealthMonitor(probe=healthy_probe, on_result=on_result, interval=1.0, timeout=0.5)

    result = await monitor.check_once()

    assert delivered == [result]


@pytest.mark.parametrize("interval,timeout", [
    (1.0, 1.0),
    (1.0, 2.0),
    (1.0, 0.0),
    (0.0, 0.5),
])
def test_invalid_timings_are_rejected(interval, timeout):
    with pytest.raises(ConfigurationError):
        HealthMonitor(probe=healthy_probe, on_result=ResultSink(), interval=interval, timeout=timeout)


@pytest.mark.asyncio
async def test_loop_probes_periodically_until_stopped():
    sink = ResultSink()
    monitor = HealthMonitor(probe=healthy_probe, on_result=sink, interval=0.05, timeout=0.02)

    monitor.start()
    monitor.start()  # no second loop
    assert monitor.running
    await asyncio.sleep(0.22)
    await monitor.stop()

    count = monitor.probe_count
    assert 2 <= count <= 5
    assert not monitor.running

    await asyncio.sleep(0.12)
    assert monitor.probe_count == count


@pytest.mark.asyncio
async def test_probes_never_overlap():
    active = 0
    peak = 0

    async def probe():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.03)
        active -= 1

    monitor = HealthMonitor(probe=probe, on_result=ResultSink(), interval=0.04, timeout=0.035)

    monitor.start()
    await asyncio.sleep(0.25)
    await monitor.stop()

    assert monitor.probe_count >= 2
    assert peak == 1


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_the_loop():
    def on_result(result):
        raise ValueError("boom")

    monitor = HealthMonitor(probe=healthy_probe, on_result=on_result, interval=0.03, timeout=0.01)

    monitor.start()
    await asyncio.sleep(0.15)
    assert monitor.running
    await monitor.stop()

    assert monitor.probe_count >= 2


@pytest.mark.asyncio
async def test_stop_when_never_started_is_a_no_op():
    monitor = HealthMonitor(probe=healthy_probe, on_result=ResultSink(), interval=1.0, timeout=0.5)

    await monitor.stop()

    assert not monitor.running


@pytest.mark.asyncio
async def test_stop_ends_loop_when_probe_swallows_cancel():
    started = asyncio.Event()

    async def probe():
        started.set()
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            return None

    sink = ResultSink()
    monitor = HealthMonitor(probe=probe, on_result=sink, interval=0.05, timeout=0.04)

    monitor.start()
    await asyncio.wait_for(started.wait(), 1.0)
    await asyncio.wait_for(monitor.stop(), 1.0)

    assert not monitor.running
    assert sink.results == []


@pytest.mark.asyncio
async def test_stop_requested_while_probe_fails():
    calls = 0
    stoppers = []
    monitor = None

    async def probe():
        nonlocal calls
        calls += 1
        if calls == 2:
            stoppers.append(asyncio.ensure_future(monitor.stop()))
            raise RuntimeError("ping failed")

    monitor = HealthMonitor(probe=probe, on_result=ResultSink(), interval=0.03, timeout=0.02)

    monitor.start()
    while not stoppers:
        await asyncio.sleep(0.01)
    await asyncio.wait_for(stoppers[0], 1.0)

    count = monitor.probe_count
    assert not monitor.running
    await asyncio.sleep(0.1)
    assert monitor.probe_count == count
    assert calls == 2


def test_result_to_dict():
    result = HealthCheckResult(timestamp=10.0, healthy=False, latency=0.0123456789, error="timeout")

    assert result.to_dict() == {
        "timestamp": 10.0,
        "healthy": False,
        "latency": 0.012346,
        "error": "timeout",
    }
