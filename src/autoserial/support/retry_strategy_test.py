from unittest import TestCase
from unittest.mock import Mock

from hamcrest import is_, assert_that, calling, raises

from autoserial.support.retry_strategy import ExponentialBackoff, RetryGate, RetryStrategy


class RetryStrategyTest(TestCase):
    def test_is_zero(self):
        assert_that(RetryStrategy()(), is_(0))


class ExponentialBackoffTest(TestCase):

    def test_doubles_up_to_max(self):
        sut = ExponentialBackoff(1, 10)
        delays = [sut.next() for _ in range(6)]
        assert_that(delays, is_([1, 2, 4, 8, 10, 10]))

    def test_delays_never_decrease(self):
        sut = ExponentialBackoff(0.5, 7)
        delays = [sut() for _ in range(10)]
        assert_that(delays, is_(sorted(delays)))
        assert_that(max(delays), is_(7))

    def test_reset_restores_min(self):
        sut = ExponentialBackoff(1, 10)
        sut.next()
        sut.next()
        sut.reset()
        assert_that(sut.next(), is_(1))

    def test_defaults(self):
        sut = ExponentialBackoff()
        assert_that(sut.min_delay, is_(1.0))
        assert_that(sut.max_delay, is_(10.0))

    def test_invalid_range(self):
        assert_that(calling(ExponentialBackoff).with_args(5, 1), raises(ValueError))
        assert_that(calling(ExponentialBackoff).with_args(-1, 1), raises(ValueError))


class RetryGateTest(TestCase):

    def setUp(self):
        self.now = 100
        self.clock = Mock(side_effect=lambda: self.now)
        self.sut = RetryGate(ExponentialBackoff(1, 4), self.clock)

    def test_ready_initially(self):
        assert_that(self.sut.ready(), is_(True))
        assert_that(self.sut.time_to_retry(), is_(0))

    def test_failure_schedules_retry(self):
        assert_that(self.sut.failed(), is_(1))
        assert_that(self.sut.ready(), is_(False))
        self.now = 100.5
        assert_that(self.sut.time_to_retry(), is_(0.5))
        self.now = 101
        assert_that(self.sut.ready(), is_(True))

    def test_repeated_failures_back_off(self):
        assert_that([self.sut.failed() for _ in range(4)], is_([1, 2, 4, 4]))
        assert_that(self.sut.retry_at, is_(104))

    def test_success_resets(self):
        self.sut.failed()
        self.sut.failed()
        self.sut.succeeded()
        assert_that(self.sut.ready(), is_(True))
        assert_that(self.sut.failed(), is_(1))
