from unittest import TestCase
from unittest.mock import Mock, call
import logging

from hamcrest import assert_that, is_

from autoserial.support.throttle import ErrorThrottle, ThrottledLogger


class ErrorThrottleTest(TestCase):

    def setUp(self):
        self.now = 0
        self.sut = ErrorThrottle(10, lambda: self.now)

    def test_first_line_allowed(self):
        assert_that(self.sut.should_log(), is_(True))

    def test_lines_within_interval_suppressed(self):
        self.sut.should_log()
        self.now = 9.9
        assert_that(self.sut.should_log(), is_(False))
        self.now = 10
        assert_that(self.sut.should_log(), is_(True))
        assert_that(self.sut.should_log(), is_(False))


class ThrottledLoggerTest(TestCase):

    def setUp(self):
        self.now = 0
        self.log = Mock()
        self.sut = ThrottledLogger(self.log, 10, lambda: self.now)

    def test_error_is_logged(self):
        self.sut.error("failed %s", "x")
        self.log.log.assert_called_once_with(logging.ERROR, "failed %s", "x", exc_info=None)

    def test_errors_and_warnings_share_window(self):
        self.sut.error("first")
        self.sut.warning("second")
        self.sut.error("third")
        assert_that(self.log.log.call_count, is_(1))
        assert_that(self.sut.suppressed, is_(2))

    def test_suppressed_count_reported_with_next_line(self):
        self.sut.warning("a")
        self.sut.warning("a")
        self.now = 11
        self.sut.warning("b %s", 1)
        assert_that(self.log.log.call_args_list[1],
                    is_(call(logging.WARNING, "b %s (%d similar messages suppressed)", 1, 1, exc_info=None)))
        assert_that(self.sut.suppressed, is_(0))
