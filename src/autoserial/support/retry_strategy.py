import time

from autoserial.support.mixins import CommonEqualityMixin


class RetryStrategy:
    """ Determines how long to wait before an operation is retried. """

    def __call__(self):
        return 0

    def reset(self):
        """ called when the operation succeeded. """


class ExponentialBackoff(RetryStrategy, CommonEqualityMixin):
    """
    Starts at a minimum delay and doubles the delay each time it is requested,
    up to a maximum. A successful operation resets the delay to the minimum.

    The same instance type drives the serial port reopen loop, the TCP client reconnect and the
    MQTT connect.
    """

    def __init__(self, min_delay=1.0, max_delay=10.0):
        """
        :param min_delay: the first delay, in seconds.
        :param max_delay: the largest delay ever returned, in seconds.
        """
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("invalid backoff range %s..%s" % (min_delay, max_delay))
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.current = min_delay

    def next(self):
        """ returns the delay to wait now and doubles the delay used next time. """
        delay = self.current
        self.current = min(self.current * 2, self.max_delay)
        return delay

    def __call__(self):
        return self.next()

    def reset(self):
        self.current = self.min_delay


class RetryGate:
    """
    Turns a retry strategy into a time gate, for callers that must not sleep while waiting
    to retry (such as a forwarder called from the decode loop.)
    """

    def __init__(self, strategy: RetryStrategy, clock=time.monotonic):
        self.strategy = strategy
        self.clock = clock
        self.retry_at = None        # None means an attempt may be made immediately

    def time_to_retry(self):
        """
        :return: the number of seconds until the next attempt is allowed; 0 or less means now.
        """
        return 0 if self.retry_at is None else self.retry_at - self.clock()

    def ready(self):
        return self.time_to_retry() <= 0

    def failed(self):
        """ records a failed attempt and schedules the next one. """
        delay = self.strategy()
        self.retry_at = self.clock() + delay
        return delay

    def succeeded(self):
        self.retry_at = None
        self.strategy.reset()
