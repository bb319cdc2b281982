import logging
import time


class ErrorThrottle:
    """ Allows at most one log line per interval. """

    def __init__(self, interval=10.0, clock=time.monotonic):
        """
        :param interval: the minimum number of seconds between two permitted lines.
        :param clock: returns the current time in seconds.
        """
        self.interval = interval
        self.clock = clock
        self.last_logged = None

    def should_log(self):
        now = self.clock()
        if self.last_logged is None or now - self.last_logged >= self.interval:
            self.last_logged = now
            return True
        return False


class ThrottledLogger:
    """
    Wraps a logger so repeated failures do not flood the log. Errors and warnings share
    the same throttle window; suppressed lines are counted and reported with the next line.
    """

    def __init__(self, log: logging.Logger, interval=10.0, clock=time.monotonic):
        self.log = log
        self.throttle = ErrorThrottle(interval, clock)
        self.suppressed = 0

    def error(self, msg, *args, exc_info=None):
        self._log(logging.ERROR, msg, args, exc_info)

    def warning(self, msg, *args):
        self._log(logging.WARNING, msg, args, None)

    def _log(self, level, msg, args, exc_info):
        if not self.throttle.should_log():
            self.suppressed += 1
            return
        if self.suppressed:
            msg = msg + " (%d similar messages suppressed)"
            args = args + (self.suppressed,)
            self.suppressed = 0
        self.log.log(level, msg, *args, exc_info=exc_info)
