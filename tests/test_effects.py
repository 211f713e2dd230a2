"""
Tests for effect contexts: TryEffect, IO and IOEffect.
"""

import asyncio

import pytest

from pipefold.dsl.catpy import Ok, Err
from pipefold.dsl.effects import IO, IOEffect, TryEffect, from_io, from_result
from pipefold.exceptions import EffectError


# =============================================================================
# TryEffect
# =============================================================================

class TestTryEffect:
    """Tests for the strict Result-valued effect."""

    def test_pure_and_run(self, try_effect):
        assert try_effect.run_sync(try_effect.pure(3)) == 3

    def test_delay_captures_exception(self, try_effect):
        result = try_effect.delay(lambda: 1 / 0)
        assert isinstance(result, Err)
        assert isinstance(result.error, ZeroDivisionError)

    def test_flat_map_captures_exception(self, try_effect):
        result = try_effect.flat_map(Ok(1), lambda x: x / 0)
        assert isinstance(result.error, ZeroDivisionError)

    def test_flat_map_rejects_foreign_values(self, try_effect):
        result = try_effect.flat_map(Ok(1), lambda x: x + 1)
        assert isinstance(result.error, EffectError)

    def test_run_sync_raises_failure(self, try_effect):
        with pytest.raises(KeyError):
            try_effect.run_sync(try_effect.raise_error(KeyError("k")))

    def test_handle_error(self, try_effect):
        recovered = try_effect.handle_error(Err(ValueError("x")), lambda exc: str(exc))
        assert recovered == Ok("x")

    def test_attempt(self, try_effect):
        assert try_effect.attempt(Ok(1)) == Ok(Ok(1))
        error = ValueError("x")
        assert try_effect.attempt(Err(error)) == Ok(Err(error))

    def test_traverse_keeps_order(self, try_effect):
        result = try_effect.traverse([3, 1, 2], lambda x: try_effect.pure(x * 10))
        assert result == Ok([30, 10, 20])

    def test_traverse_stops_at_first_failure(self, try_effect):
        seen = []

        def step(x):
            seen.append(x)
            return try_effect.delay(lambda: 10 / x)

        result = try_effect.traverse([1, 0, 2], step)
        assert isinstance(result.error, ZeroDivisionError)
        assert seen == [1, 0]

    def test_base_exception_propagates(self, try_effect):
        def interrupt():
            raise KeyboardInterrupt()

        with pytest.raises(KeyboardInterrupt):
            try_effect.delay(interrupt)


# =============================================================================
# IO
# =============================================================================

class TestIO:
    """Tests for the lazy IO value and its run loop."""

    def test_delay_is_lazy(self):
        calls = []
        io = IO.delay(lambda: calls.append(1) or len(calls))
        assert calls == []
        assert io.run() == 1

    def test_rerun_repeats_effects(self):
        calls = []
        io = IO.delay(lambda: calls.append(1) or len(calls)).map(lambda n: n * 10)
        assert io.run() == 10
        assert io.run() == 20

    def test_failure_raises_from_run(self):
        with pytest.raises(ZeroDivisionError):
            IO.pure(0).map(lambda x: 1 / x).run()

    def test_handle_error_with(self):
        io = IO.fail(ValueError("bad")).handle_error_with(lambda exc: IO.pure(str(exc)))
        assert io.run() == "bad"

    def test_recovery_skipped_on_success(self):
        io = IO.pure(1).handle_error_with(lambda exc: IO.pure(-1)).map(lambda x: x + 1)
        assert io.run() == 2

    def test_failure_skips_binds_until_handler(self):
        calls = []
        io = (
            IO.fail(ValueError("x"))
            .map(lambda v: calls.append(v))
            .handle_error_with(lambda exc: IO.pure("recovered"))
        )
        assert io.run() == "recovered"
        assert calls == []

    def test_long_left_nested_chain_is_stack_safe(self):
        io = IO.pure(0)
        for _ in range(50_000):
            io = io.flat_map(lambda n: IO.pure(n + 1))
        assert io.run() == 50_000

    def test_long_right_nested_chain_is_stack_safe(self):
        def count(n):
            if n == 0:
                return IO.pure("done")
            return IO.pure(n - 1).flat_map(count)

        assert count(50_000).run() == "done"

    def test_continuation_must_return_io(self):
        with pytest.raises(EffectError):
            IO.pure(1).flat_map(lambda x: x).run()

    def test_awaitable_needs_run_async(self):
        async def fetch():
            return 1

        with pytest.raises(EffectError, match="run_async"):
            IO.from_awaitable(fetch).run()

    def test_run_async(self):
        async def fetch(n):
            await asyncio.sleep(0)
            return n * 2

        io = IO.from_awaitable(lambda: fetch(21)).map(lambda x: x + 0)
        assert asyncio.run(io.run_async()) == 42

    def test_cancellation_is_not_recovered(self):
        async def cancelled():
            raise asyncio.CancelledError()

        io = IO.from_awaitable(cancelled).handle_error_with(lambda exc: IO.pure("swallowed"))
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(io.run_async())


# =============================================================================
# IOEffect and converters
# =============================================================================

class TestIOEffect:
    """Tests for the IO-valued effect and cross-effect converters."""

    def test_traverse_runs_when_executed(self, io_effect):
        seen = []
        io = io_effect.traverse([1, 2, 3], lambda x: io_effect.delay(lambda: seen.append(x) or x))
        assert seen == []
        assert io.run() == [1, 2, 3]
        assert seen == [1, 2, 3]

    def test_traverse_is_rerunnable(self, io_effect):
        io = io_effect.traverse([1, 2], io_effect.pure)
        assert io.run() == [1, 2]
        assert io.run() == [1, 2]

    def test_rejects_foreign_values(self, io_effect):
        with pytest.raises(EffectError):
            io_effect.flat_map(Ok(1), IO.pure)

    def test_from_result(self, effect):
        assert effect.run_sync(from_result(effect, Ok(3))) == 3
        with pytest.raises(ValueError):
            effect.run_sync(from_result(effect, Err(ValueError("no"))))

    def test_from_result_wraps_non_exception_errors(self, effect):
        with pytest.raises(EffectError):
            effect.run_sync(from_result(effect, Err("not an exception")))

    def test_from_io(self, effect):
        assert effect.run_sync(from_io(effect, IO.pure(5).map(lambda x: x + 1))) == 6
