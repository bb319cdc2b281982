import socket
import time
import unittest
from unittest.mock import Mock, patch

import timeout_decorator
from hamcrest import assert_that, is_, calling, raises, empty, none, not_none, has_property

from autoserial.forwarding.base import ForwarderError
from autoserial.forwarding.tcp import TcpForwarder, TcpForwarderOptions, peer_closed, resolve_bind_address
from autoserial.model import ParsedMessage
from autoserial.support.async_loop_test import debug_timeout

host = '127.0.0.1'


def wait_until(condition, timeout=2):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met within %ss" % timeout)
        time.sleep(0.01)


class ResolveBindAddressTest(unittest.TestCase):

    def test_all_interfaces(self):
        for value in ('', '0.0.0.0', ' ', 'some.host.name', None):
            assert_that(resolve_bind_address(value), is_((socket.AF_INET, '')))

    def test_specific_address(self):
        assert_that(resolve_bind_address('127.0.0.1'), is_((socket.AF_INET, '127.0.0.1')))
        assert_that(resolve_bind_address('::1'), is_((socket.AF_INET6, '::1')))


class TcpServerForwarderTest(unittest.TestCase):

    def setUp(self):
        self.sut = TcpForwarder(TcpForwarderOptions(mode='server', host=host, port=0))
        self.connections = []

    def tearDown(self):
        self.sut.stop()
        for c in self.connections:
            c.close()

    def connect(self):
        count = len(self.sut.clients)
        c = socket.create_connection(self.sut.address[:2], timeout=2)
        self.connections.append(c)
        wait_until(lambda: len(self.sut.clients) > count)
        return c

    @timeout_decorator.timeout(debug_timeout(5))
    def test_forward_without_clients_does_not_block(self):
        self.sut.start()
        start = time.monotonic()
        self.sut.forward(ParsedMessage("nobody listening"))
        assert_that(time.monotonic() - start < 0.5, is_(True))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_forward_when_not_started(self):
        self.sut.forward(ParsedMessage("x"))
        assert_that(self.sut.address, is_(none()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_broadcasts_to_all_clients(self):
        self.sut.start()
        c1 = self.connect()
        c2 = self.connect()
        self.sut.forward(ParsedMessage("hello"))
        assert_that(c1.recv(100), is_(b'hello\n'))
        assert_that(c2.recv(100), is_(b'hello\n'))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_disconnected_client_is_pruned(self):
        self.sut.start()
        c = self.connect()
        c.close()

        def pruned():
            self.sut.forward(ParsedMessage("ping"))
            return not self.sut.clients
        wait_until(pruned)
        assert_that(self.sut.clients, is_(empty()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_start_is_idempotent(self):
        self.sut.start()
        listener = self.sut.listener
        self.sut.start()
        assert_that(self.sut.listener, is_(listener))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_stop_closes_clients(self):
        self.sut.start()
        c = self.connect()
        self.sut.stop()
        assert_that(self.sut.listener, is_(none()))
        assert_that(self.sut.clients, is_(empty()))
        assert_that(c.recv(10), is_(b''))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_restart_after_stop(self):
        self.sut.start()
        self.sut.stop()
        self.sut.start()
        assert_that(self.sut.address, is_(not_none()))

    def test_address_in_use(self):
        taken = socket.socket()
        self.connections.append(taken)
        taken.bind((host, 0))
        taken.listen(1)
        port = taken.getsockname()[1]
        sut = TcpForwarder(TcpForwarderOptions(host=host, port=port))
        assert_that(calling(sut.start),
                    raises(ForwarderError, "TCP port already in use: 127.0.0.1:%d" % port))
        try:
            sut.start()
        except ForwarderError as e:
            assert_that(e, has_property('address_in_use', True))
        assert_that(sut.listener, is_(none()))

    def test_disabled_does_not_listen(self):
        sut = TcpForwarder(TcpForwarderOptions(host=host, port=0), enabled=False)
        sut.start()
        assert_that(sut.listener, is_(none()))


class TcpClientForwarderTest(unittest.TestCase):

    def setUp(self):
        self.now = 0
        self.server = socket.socket()
        self.server.bind((host, 0))
        self.server.listen(1)
        self.server.settimeout(2)
        port = self.server.getsockname()[1]
        self.sut = TcpForwarder(TcpForwarderOptions(mode='Client', host=host, port=port), clock=lambda: self.now)

    def tearDown(self):
        self.sut.stop()
        self.server.close()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connects_and_sends(self):
        self.sut.start()
        assert_that(self.sut.listener, is_(none()))
        self.sut.forward(ParsedMessage("one"))
        conn, _ = self.server.accept()
        try:
            conn.settimeout(2)
            self.sut.forward(ParsedMessage("two"))
            received = b''
            while received.count(b'\n') < 2:
                received += conn.recv(100)
            assert_that(received, is_(b'one\ntwo\n'))
        finally:
            conn.close()

    def test_connect_failure_backs_off(self):
        connect = Mock(side_effect=ConnectionRefusedError())
        with patch('autoserial.forwarding.tcp.socket.create_connection', connect):
            self.sut.forward(ParsedMessage("dropped"))
            self.sut.forward(ParsedMessage("dropped"))
            assert_that(connect.call_count, is_(1))
            self.now = 1
            self.sut.forward(ParsedMessage("dropped"))
            assert_that(connect.call_count, is_(2))
            self.now = 2
            self.sut.forward(ParsedMessage("dropped"))
            assert_that(connect.call_count, is_(2))
        assert_that(self.sut.client, is_(none()))

    def test_send_failure_closes_connection(self):
        sock = Mock()
        sock.sendall.side_effect = BrokenPipeError()
        with patch('autoserial.forwarding.tcp.socket.create_connection', Mock(return_value=sock)):
            self.sut.forward(ParsedMessage("lost"))
        assert_that(self.sut.client, is_(none()))
        sock.close.assert_called_once_with()

    def test_success_resets_backoff(self):
        sock = Mock()
        connect = Mock(side_effect=[OSError(), OSError(), sock])
        with patch('autoserial.forwarding.tcp.socket.create_connection', connect):
            self.sut.forward(ParsedMessage("a"))
            self.now = 1
            self.sut.forward(ParsedMessage("b"))
            self.now = 3
            self.sut.forward(ParsedMessage("c"))
        assert_that(self.sut.client, is_(sock))
        assert_that(self.sut.gate.strategy.current, is_(1.0))
        sock.sendall.assert_called_once_with(b'c\n')


class PeerClosedTest(unittest.TestCase):

    @timeout_decorator.timeout(debug_timeout(5))
    def test_open_and_closed(self):
        a, b = socket.socketpair()
        try:
            assert_that(peer_closed(a), is_(False))
            b.sendall(b'data')
            wait_until(lambda: a.recv(4, socket.MSG_PEEK) == b'data')
            assert_that(peer_closed(a), is_(False))
            a.recv(4)
            b.close()
            wait_until(lambda: peer_closed(a))
        finally:
            a.close()
            b.close()
