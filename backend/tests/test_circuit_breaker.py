"""Tests for the circuit breaker module."""

import asyncio

import pytest

from docgraph.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState


class _Refused(ConnectionError):
    pass


@pytest.fixture
def breaker():
    return CircuitBreaker("test", failure_threshold=3, cooldown_seconds=0.2, failure_types=(_Refused,))


async def _succeed():
    return "ok"


async def _fail():
    raise _Refused("boom")


async def _answer_with_error():
    raise ValueError("bad request")


async def _trip(breaker: CircuitBreaker) -> None:
    for _ in range(breaker.failure_threshold):
        with pytest.raises(_Refused):
            await breaker.call(_fail)


# -------------------------------------------------------------------
# State transitions
# -------------------------------------------------------------------


async def test_starts_closed(breaker: CircuitBreaker):
    assert breaker.state == CircuitState.CLOSED


async def test_stays_closed_on_success(breaker: CircuitBreaker):
    assert await breaker.call(_succeed) == "ok"
    assert breaker.state == CircuitState.CLOSED


async def test_opens_after_threshold_failures(breaker: CircuitBreaker):
    await _trip(breaker)
    assert breaker.state == CircuitState.OPEN


async def test_rejects_when_open_without_creating_coroutine(breaker: CircuitBreaker):
    await _trip(breaker)
    calls = []

    async def _tracked():
        calls.append(1)

    with pytest.raises(CircuitBreakerOpen) as exc_info:
        await breaker.call(_tracked)
    assert calls == []
    assert exc_info.value.breaker_name == "test"


async def test_non_failure_exceptions_do_not_count(breaker: CircuitBreaker):
    for _ in range(5):
        with pytest.raises(ValueError):
            await breaker.call(_answer_with_error)
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


async def test_success_resets_failure_count(breaker: CircuitBreaker):
    with pytest.raises(_Refused):
        await breaker.call(_fail)
    await breaker.call(_succeed)
    assert breaker.failure_count == 0


# -------------------------------------------------------------------
# Half-open probing
# -------------------------------------------------------------------


async def test_half_open_after_cooldown(breaker: CircuitBreaker):
    await _trip(breaker)
    await asyncio.sleep(0.25)
    assert breaker.state == CircuitState.HALF_OPEN


async def test_half_open_success_closes(breaker: CircuitBreaker):
    await _trip(breaker)
    await asyncio.sleep(0.25)

    assert await breaker.call(_succeed) == "ok"
    assert breaker.state == CircuitState.CLOSED


async def test_half_open_failure_reopens(breaker: CircuitBreaker):
    await _trip(breaker)
    await asyncio.sleep(0.25)

    with pytest.raises(_Refused):
        await breaker.call(_fail)
    assert breaker.state == CircuitState.OPEN


async def test_only_one_probe_at_a_time(breaker: CircuitBreaker):
    await _trip(breaker)
    await asyncio.sleep(0.25)
    gate = asyncio.Event()

    async def _slow_probe():
        await gate.wait()
        return "probe"

    probe = asyncio.create_task(breaker.call(_slow_probe))
    await asyncio.sleep(0)

    with pytest.raises(CircuitBreakerOpen):
        await breaker.call(_succeed)

    gate.set()
    assert await probe == "probe"
    assert breaker.state == CircuitState.CLOSED


def test_reset(breaker: CircuitBreaker):
    breaker._state = CircuitState.OPEN
    breaker._failure_count = 5
    breaker.reset()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0
