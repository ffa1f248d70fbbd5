"""Tests for AsyncValidator composition and lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from valora import (
    CANCELLED_ERROR,
    INVALID_ERROR,
    OPERATION_ERROR,
    TIMEOUT_ERROR,
    AsyncioClock,
    AsyncValidator,
    DebounceStrategy,
    ManualClock,
    RetryPolicy,
    RetryStrategy,
    Strategy,
    TimeoutStrategy,
    ValidationContext,
    ValidationResult,
    ValoraValidationError,
    async_validator,
    sleep,
)


def sleeping(clock, log=None):
    """Operation that sleeps `value` seconds on the given clock."""

    async def op(value, ctx):
        await sleep(clock, value)
        if log is not None:
            log.append(value)
        return ValidationResult.ok(value)

    return op


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


class TestComposition:
    def test_fluent_calls_return_new_validators(self):
        base = AsyncValidator(lambda v, ctx: True)
        timed = base.timeout(5.0)
        assert timed is not base
        assert base.strategies == ()
        assert timed.strategies == (TimeoutStrategy(5.0),)

    def test_strategies_in_call_order(self):
        v = AsyncValidator(lambda v, ctx: True).debounce(0.3).timeout(5.0).retry(2)
        assert v.strategies == (
            DebounceStrategy(0.3),
            TimeoutStrategy(5.0),
            RetryStrategy(RetryPolicy(max_attempts=2)),
        )

    def test_branches_are_independent(self):
        base = AsyncValidator(lambda v, ctx: True).timeout(1.0)
        a = base.retry(2)
        b = base.debounce(0.1)
        assert a.strategies[0] is b.strategies[0]
        assert a.strategies[1] != b.strategies[1]

    def test_with_strategy(self):
        v = AsyncValidator(lambda v, ctx: True).with_strategy(TimeoutStrategy(2.0))
        assert v.strategies == (TimeoutStrategy(2.0),)

    def test_default_clock(self):
        assert isinstance(AsyncValidator(lambda v, ctx: True).clock, AsyncioClock)

    def test_with_clock(self):
        clock = ManualClock()
        v = AsyncValidator(lambda v, ctx: True).timeout(1.0)
        assert v.with_clock(clock).clock is clock
        assert v.with_clock(clock).strategies == v.strategies

    def test_repr(self):
        async def check_username(value, ctx):
            return True

        v = AsyncValidator(check_username)
        assert repr(v) == "AsyncValidator(Operation(check_username))"
        assert repr(v.debounce(0.3).timeout(5.0)) == (
            "AsyncValidator(Operation(check_username), "
            "strategies=[Debounce(0.3s), Timeout(5s)])"
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateAsync:
    def test_plain_validator(self):
        async def upper(value, ctx):
            return ValidationResult.ok(value.upper())

        result = asyncio.run(AsyncValidator(upper).validate_async("hello"))
        assert result.success
        assert result.data == "HELLO"

    def test_default_context(self):
        seen = []

        async def check(value, ctx):
            seen.append(ctx)
            return True

        asyncio.run(AsyncValidator(check).validate_async("x"))
        assert seen[0].path == []
        assert seen[0].locale == "en"
        assert seen[0].data == {"value": "x"}

    def test_error_placed_at_context_path(self):
        async def email_unique(value, ctx):
            return False

        ctx = ValidationContext(path=["user", "email"], field="email")
        v = AsyncValidator(email_unique, error="Email already registered")
        result = asyncio.run(v.validate_async("a@b.c", ctx))
        assert result.errors[0].path == ["user", "email"]
        assert result.errors[0].field == "email"
        assert result.messages == ["Email already registered"]

    def test_operation_error_is_a_result(self):
        async def boom(value, ctx):
            raise ConnectionError("database unreachable")

        result = asyncio.run(AsyncValidator(boom).validate_async("x"))
        assert result.errors[0].code == OPERATION_ERROR
        assert result.messages == ["database unreachable"]

    def test_raise_if_invalid(self):
        async def taken(value, ctx):
            return False

        result = asyncio.run(
            AsyncValidator(taken, error="Username {value} is taken").validate_async("admin")
        )
        with pytest.raises(ValoraValidationError, match="Username admin is taken"):
            result.raise_if_invalid()

    def test_exploding_strategy_becomes_failure(self):
        class Exploding(Strategy):
            def wrap(self, inner, clock):
                async def layer(value, context, token):
                    raise RuntimeError("layer exploded")

                return layer

        v = AsyncValidator(lambda v, ctx: True).with_strategy(Exploding())
        result = asyncio.run(v.validate_async("x"))
        assert result.errors[0].code == OPERATION_ERROR
        assert result.messages == ["layer exploded"]
        assert not v.is_pending()

    def test_then_feeds_data_forward(self):
        async def strip(value, ctx):
            return value.strip()

        async def not_reserved(value, ctx):
            return value not in {"admin", "root"}

        v = AsyncValidator(strip).then(not_reserved, error="{value} is reserved")
        ok = asyncio.run(v.validate_async("  bob  "))
        bad = asyncio.run(v.validate_async(" admin "))
        assert ok.data == "bob"
        assert bad.messages == ["admin is reserved"]
        assert repr(v) == "AsyncValidator(Operation(strip) >> Operation(not_reserved))"

    def test_then_short_circuits(self):
        calls = []

        async def reject(value, ctx):
            calls.append("reject")
            return False

        async def never(value, ctx):
            calls.append("never")
            return True

        result = asyncio.run(AsyncValidator(reject).then(never).validate_async(1))
        assert result.errors[0].code == INVALID_ERROR
        assert calls == ["reject"]

    def test_then_runs_beneath_strategies(self):
        attempts = 0

        async def first(value, ctx):
            return value + 1

        async def flaky(value, ctx):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ValueError("hiccup")
            return value * 10

        v = AsyncValidator(first).retry(RetryPolicy(max_attempts=2, initial_delay=0))
        v = v.then(flaky)
        assert asyncio.run(v.validate_async(1)).data == 20
        assert attempts == 2


# ---------------------------------------------------------------------------
# Strategy ordering
# ---------------------------------------------------------------------------


class TestOrdering:
    def test_timeout_outside_debounce_counts_the_wait(self):
        async def scenario():
            clock = ManualClock()
            v = (
                AsyncValidator(lambda v, ctx: True)
                .debounce(0.3)
                .timeout(0.2)
                .with_clock(clock)
            )
            task = asyncio.ensure_future(v.validate_async("x"))
            await clock.advance(0.2)
            return task.result()

        assert asyncio.run(scenario()).errors[0].code == TIMEOUT_ERROR

    def test_debounce_outside_timeout(self):
        async def scenario():
            clock = ManualClock()
            v = (
                AsyncValidator(lambda v, ctx: True)
                .timeout(0.2)
                .debounce(0.3)
                .with_clock(clock)
            )
            task = asyncio.ensure_future(v.validate_async("x"))
            await clock.advance(0.3)
            return task.result()

        result = asyncio.run(scenario())
        assert result.success
        assert result.data == "x"

    def test_timeout_bounds_all_retries(self):
        attempts = 0

        async def scenario():
            clock = ManualClock()

            async def down(value, ctx):
                nonlocal attempts
                attempts += 1
                raise ConnectionError("down")

            policy = RetryPolicy(max_attempts=10, initial_delay=1.0, backoff_multiplier=1)
            v = AsyncValidator(down).retry(policy).timeout(2.5).with_clock(clock)
            task = asyncio.ensure_future(v.validate_async("x"))
            await clock.advance(2.5)
            return task.result()

        result = asyncio.run(scenario())
        assert result.errors[0].code == TIMEOUT_ERROR
        assert attempts == 3

    def test_retry_inside_timeout_recovers(self):
        attempts = 0

        async def flaky(value, ctx):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ConnectionError("Temporary failure")
            return True

        policy = RetryPolicy(max_attempts=3, initial_delay=0.01)
        v = AsyncValidator(flaky).retry(policy).timeout(1.0)
        result = asyncio.run(v.validate_async("x"))
        assert result.success
        assert attempts == 2


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    def test_pending_while_running(self):
        async def scenario():
            clock = ManualClock()
            v = AsyncValidator(sleeping(clock))
            assert not v.is_pending()

            task = asyncio.ensure_future(v.validate_async(1.0))
            await clock.settle()
            assert v.is_pending()
            assert v.state.pending
            assert v.state.current_operation_id == 1

            await clock.advance(1.0)
            assert task.done()
            assert not v.is_pending()

        asyncio.run(scenario())

    def test_state_is_a_snapshot(self):
        v = AsyncValidator(lambda v, ctx: True)
        snapshot = v.state
        snapshot.pending = True
        assert v.state.pending is False

    def test_wait_for_completion(self):
        async def scenario():
            clock = ManualClock()
            v = AsyncValidator(sleeping(clock))
            asyncio.ensure_future(v.validate_async(1.0))
            await clock.settle()

            waiter = asyncio.ensure_future(v.wait_for_completion())
            await clock.advance(0.5)
            assert not waiter.done()
            await clock.advance(0.5)
            assert waiter.done()
            assert not v.is_pending()

        asyncio.run(scenario())

    def test_wait_for_completion_when_idle(self):
        v = AsyncValidator(lambda v, ctx: True)
        asyncio.run(v.wait_for_completion())
        assert not v.is_pending()

    def test_cancel(self):
        async def scenario():
            clock = ManualClock()
            log = []
            v = AsyncValidator(sleeping(clock, log))
            task = asyncio.ensure_future(v.validate_async(1.0))
            await clock.settle()

            v.cancel()
            assert not v.is_pending()
            assert v.state.cancel_requested
            await clock.settle()
            assert task.done()
            first = task.result()

            # Late completion of the cancelled operation is discarded
            await clock.advance(1.0)
            assert log == [1.0]
            assert task.result() is first
            assert v.state.cancel_requested
            return first

        result = asyncio.run(scenario())
        assert not result.success
        assert result.errors[0].code == CANCELLED_ERROR
        assert result.messages == ["Validation cancelled"]

    def test_new_call_after_cancel(self):
        async def scenario():
            clock = ManualClock()
            v = AsyncValidator(sleeping(clock))
            asyncio.ensure_future(v.validate_async(1.0))
            await clock.settle()
            v.cancel()

            task = asyncio.ensure_future(v.validate_async(0.5))
            await clock.settle()
            assert v.state.cancel_requested is False
            assert v.state.current_operation_id == 2
            await clock.advance(0.5)
            return task.result()

        result = asyncio.run(scenario())
        assert result.success
        assert result.data == 0.5

    def test_cancel_when_idle_is_noop(self):
        v = AsyncValidator(lambda v, ctx: True)
        v.cancel()
        assert not v.is_pending()
        assert v.state.cancel_requested is False

    def test_cancel_after_completion_is_noop(self):
        async def scenario():
            v = AsyncValidator(lambda v, ctx: True)
            result = await v.validate_async("x")
            v.cancel()
            return v, result

        v, result = asyncio.run(scenario())
        assert result.success
        assert v.state.cancel_requested is False

    def test_stale_operation_does_not_clear_pending(self):
        async def scenario():
            clock = ManualClock()
            v = AsyncValidator(sleeping(clock))
            t1 = asyncio.ensure_future(v.validate_async(1.0))
            t2 = asyncio.ensure_future(v.validate_async(2.0))
            await clock.advance(1.0)

            # The first call finished but the second is still running
            assert t1.done()
            assert t1.result().data == 1.0
            assert not t2.done()
            assert v.is_pending()

            await clock.advance(1.0)
            assert t2.result().data == 2.0
            assert not v.is_pending()

        asyncio.run(scenario())

    def test_cancel_only_hits_most_recent(self):
        async def scenario():
            clock = ManualClock()
            v = AsyncValidator(sleeping(clock))
            t1 = asyncio.ensure_future(v.validate_async(1.0))
            t2 = asyncio.ensure_future(v.validate_async(1.0))
            await clock.settle()
            v.cancel()
            await clock.advance(1.0)
            return t1.result(), t2.result()

        r1, r2 = asyncio.run(scenario())
        assert r1.success
        assert r2.errors[0].code == CANCELLED_ERROR

    def test_validators_have_separate_lifecycles(self):
        async def scenario():
            clock = ManualClock()
            base = AsyncValidator(sleeping(clock))
            timed = base.timeout(5.0).with_clock(clock)
            asyncio.ensure_future(timed.validate_async(1.0))
            await clock.settle()
            assert timed.is_pending()
            assert not base.is_pending()
            await clock.advance(1.0)

        asyncio.run(scenario())


# ---------------------------------------------------------------------------
# Realistic flows
# ---------------------------------------------------------------------------


TAKEN_USERNAMES = {"admin", "root", "alice"}


class TestUsernameCheck:
    def build(self, clock, lookups):
        async def username_available(username, ctx):
            lookups.append(username)
            await sleep(clock, 0.05)
            return username not in TAKEN_USERNAMES

        return (
            AsyncValidator(username_available, error="Username {value} is taken")
            .debounce(0.3)
            .timeout(5.0)
            .with_clock(clock)
        )

    def test_available(self):
        async def scenario():
            clock = ManualClock()
            lookups = []
            v = self.build(clock, lookups)
            task = asyncio.ensure_future(v.validate_async("bob"))
            await clock.advance(0.3)
            await clock.advance(0.05)
            return lookups, task.result()

        lookups, result = asyncio.run(scenario())
        assert lookups == ["bob"]
        assert result.success
        assert result.data == "bob"

    def test_taken_while_typing(self):
        async def scenario():
            clock = ManualClock()
            lookups = []
            v = self.build(clock, lookups)
            tasks = []
            for partial in ("a", "ad", "adm", "admi", "admin"):
                tasks.append(asyncio.ensure_future(v.validate_async(partial)))
                await clock.advance(0.1)
            await clock.advance(0.3)
            return lookups, [t.result() for t in tasks]

        lookups, results = asyncio.run(scenario())
        assert lookups == ["admin"]
        for result in results:
            assert result.messages == ["Username admin is taken"]


class TestDecorator:
    def test_without_arguments(self):
        @async_validator
        async def email_unique(value, ctx):
            return value != "taken@example.com"

        assert isinstance(email_unique, AsyncValidator)
        assert repr(email_unique) == "AsyncValidator(Operation(email_unique))"
        result = asyncio.run(email_unique.validate_async("taken@example.com"))
        assert result.messages == ["Check failed: email_unique"]

    def test_with_arguments(self):
        @async_validator(name="email", error="{value} is already registered")
        async def email_unique(value, ctx):
            return value != "taken@example.com"

        assert repr(email_unique) == "AsyncValidator(Operation(email))"
        result = asyncio.run(email_unique.timeout(1.0).validate_async("taken@example.com"))
        assert result.messages == ["taken@example.com is already registered"]
