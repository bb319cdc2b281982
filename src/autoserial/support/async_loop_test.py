import sys
import threading
from unittest import TestCase
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, is_, greater_than

from autoserial.support.async_loop import AsyncLoop


def debug_timeout(value):
    """
    Replaces the timeout value with a very large one if the tests are running under a debugger.
    This prevents the main thread from throwing an exception and exiting when the test times out
    due to a breakpoint.
    """
    return value if sys.gettrace() is None else 100000


class AsyncLoopTest(TestCase):

    @timeout_decorator.timeout(debug_timeout(5))
    def test_runs_function_until_stopped(self):
        called = threading.Event()
        fn = Mock(side_effect=lambda: called.set())
        sut = AsyncLoop(fn, name="test")
        sut.start()
        called.wait()
        sut.stop()
        assert_that(fn.call_count, is_(greater_than(0)))
        assert_that(sut.running(), is_(False))
        assert_that(sut.background_thread, is_(None))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_start_twice_starts_one_thread(self):
        gate = threading.Event()
        sut = AsyncLoop(lambda: gate.wait(0.01))
        sut.start()
        thread = sut.background_thread
        sut.start()
        assert_that(sut.background_thread, is_(thread))
        sut.stop()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_exceptions_are_passed_to_handler(self):
        error = ValueError("boom")
        handled = threading.Event()
        sut = AsyncLoop(Mock(side_effect=error))
        sut.exception_handler = Mock(side_effect=lambda e: handled.set())
        sut.start()
        handled.wait()
        sut.stop()
        sut.exception_handler.assert_any_call(error)

    def test_wait_returns_early_when_stopped(self):
        sut = AsyncLoop()
        sut.stop()
        assert_that(sut.wait(10), is_(True))

    def test_stop_without_start(self):
        sut = AsyncLoop()
        sut.stop()
        assert_that(sut.running(), is_(False))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_stop_from_loop_thread_does_not_join_itself(self):
        sut = AsyncLoop()
        stopped = threading.Event()

        def stop_self():
            sut.stop()
            stopped.set()

        sut.fn = stop_self
        sut.start()
        stopped.wait()
        assert_that(sut.running(), is_(False))
