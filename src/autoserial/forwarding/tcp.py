"""
Forwards messages as lines of text over TCP, either as a server broadcasting to every connected
client, or as a client connected to a remote server.
"""
import errno
import ipaddress
import logging
import os
import select
import socket
import threading
import time

from autoserial.forwarding.base import Forwarder, ForwarderError
from autoserial.support.async_loop import AsyncLoop
from autoserial.support.options import Options
from autoserial.support.retry_strategy import ExponentialBackoff, RetryGate

logger = logging.getLogger(__name__)

SERVER_MODE = 'Server'
CLIENT_MODE = 'Client'

# how often the accept loop checks if it has been stopped
ACCEPT_POLL_INTERVAL = 0.5


class TcpForwarderOptions(Options):
    defaults = {
        'mode': SERVER_MODE,
        'host': '0.0.0.0',
        'port': 9000,
        'connect_timeout': 3.0,
        'send_timeout': 2.0,
    }


def resolve_bind_address(host):
    """
    Determines the local address to listen on. Blank, 0.0.0.0 and host names listen on all interfaces.
    :return: a tuple of the address family and address
    >>> resolve_bind_address('127.0.0.1')
    (<AddressFamily.AF_INET: 2>, '127.0.0.1')
    >>> resolve_bind_address('localhost')
    (<AddressFamily.AF_INET: 2>, '')
    """
    try:
        address = ipaddress.ip_address((host or '').strip())
    except ValueError:
        return socket.AF_INET, ''
    if address.version == 6:
        return socket.AF_INET6, str(address)
    return socket.AF_INET, '' if address.is_unspecified else str(address)


def peer_closed(sock):
    """
    Determines if the remote end of a connected socket has closed the connection, without blocking.
    """
    try:
        readable, _, _ = select.select([sock], [], [], 0)
        if not readable:
            return False
        return sock.recv(1, socket.MSG_PEEK) == b''
    except (BlockingIOError, socket.timeout):
        return False
    except (OSError, ValueError):
        return True


def close_quietly(sock):
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass    # the peer may have closed the socket already
    finally:
        sock.close()


class TcpForwarder(Forwarder):
    """
    Sends each message as a UTF-8 line of text.

    In server mode, the forwarder listens for clients and broadcasts each message to all of them.
    Clients that have disconnected are dropped.

    In client mode, the forwarder connects to the server when the first message is forwarded. When
    the connection fails, messages are dropped until the retry delay has passed, so the caller
    is never held up waiting to reconnect.
    """
    name = 'TCP'

    def __init__(self, options: TcpForwarderOptions = None, enabled=True, clock=time.monotonic):
        super().__init__(enabled, logger)
        self.options = options or TcpForwarderOptions()
        self.gate = RetryGate(ExponentialBackoff(), clock)
        self.clients = []
        self.listener = None
        self.client = None
        self._accept_loop = None
        self._lock = threading.Lock()

    @property
    def server_mode(self):
        return (self.options.mode or '').strip().lower() == SERVER_MODE.lower()

    @property
    def endpoint(self):
        return "%s:%d" % (self.options.host, self.options.port)

    @property
    def address(self):
        """ the address the server is listening on, or None when not listening. """
        listener = self.listener
        return listener.getsockname() if listener else None

    def start(self):
        if not self.enabled or not self.server_mode:
            return
        with self._lock:
            if self.listener is not None:
                return
            self.listener = self._listen()
            self._accept_loop = AsyncLoop(self._accept, name="tcp-accept-%d" % self.options.port, log=logger)
            self._accept_loop.start()
        logger.info("TCP forwarder listening on %s", self.endpoint)

    def _listen(self):
        family, address = resolve_bind_address(self.options.host)
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            if os.name != 'nt':
                # allows a restart while old connections are in TIME_WAIT
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((address, self.options.port))
            sock.listen(5)
            sock.settimeout(ACCEPT_POLL_INTERVAL)
            return sock
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                raise ForwarderError("TCP port already in use: %s" % self.endpoint, address_in_use=True) from e
            raise ForwarderError("TCP listener failed to start: %s" % self.endpoint) from e

    def _accept(self):
        listener = self.listener
        if listener is None:
            self._accept_loop.wait(ACCEPT_POLL_INTERVAL)
            return
        try:
            conn, peer = listener.accept()
        except socket.timeout:
            return
        except OSError as e:
            if self._accept_loop.running():
                self.errors.error("TCP server accept failed: %s", e)
                self._accept_loop.wait(1)
            return
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        conn.settimeout(self.options.send_timeout)
        with self._lock:
            self.clients.append(conn)
        logger.info("TCP client connected from %s:%s", peer[0], peer[1])

    def stop(self):
        with self._lock:
            loop, self._accept_loop = self._accept_loop, None
            listener = self.listener
        if loop:
            loop.stop()
        with self._lock:
            self.listener = None
            clients, self.clients = self.clients, []
            client, self.client = self.client, None
        if listener:
            listener.close()
        for c in clients:
            close_quietly(c)
        if client:
            close_quietly(client)

    def forward(self, message):
        if not self.enabled:
            return
        payload = (message.text + "\n").encode('utf-8')
        if self.server_mode:
            self._broadcast(payload)
        else:
            self._send_to_server(payload)

    def _broadcast(self, payload):
        with self._lock:
            clients = list(self.clients)
        for c in clients:
            if peer_closed(c):
                logger.info("TCP client disconnected")
                self._remove_client(c)
                continue
            try:
                c.sendall(payload)
            except OSError as e:
                self.errors.error("TCP forwarder failed to send data: %s", e)
                self._remove_client(c)

    def _remove_client(self, c):
        with self._lock:
            if c in self.clients:
                self.clients.remove(c)
        close_quietly(c)

    def _send_to_server(self, payload):
        sock = self.client or self._connect()
        if sock is None:
            return
        try:
            sock.sendall(payload)
        except OSError as e:
            self.errors.error("TCP forwarder failed to send data to %s: %s", self.endpoint, e)
            with self._lock:
                if self.client is sock:
                    self.client = None
            close_quietly(sock)

    def _connect(self):
        """
        Connects to the server unless waiting to retry.
        :return: the connected socket, or None
        """
        if not self.gate.ready():
            logger.debug("TCP client not connected, message to %s dropped", self.endpoint)
            return None
        try:
            sock = socket.create_connection((self.options.host, self.options.port),
                                            timeout=self.options.connect_timeout)
        except OSError as e:
            delay = self.gate.failed()
            self.errors.error("TCP client connect to %s failed, retrying in %.0fs: %s", self.endpoint, delay, e)
            return None
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.options.send_timeout)
        self.gate.succeeded()
        with self._lock:
            self.client = sock
        logger.info("TCP client connected to %s", self.endpoint)
        return sock
