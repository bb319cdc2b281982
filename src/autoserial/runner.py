"""
Runs one device: locates and opens its serial port, reads, decodes, parses and forwards the data,
and reopens the port with a backoff when it is lost.

Two threads work for a connected device. The read thread polls the port and puts each batch of
bytes on a queue; the run thread takes the batches off the queue, decodes and parses them and
hands each message to the forwarders. The run thread also owns the connect/reconnect cycle, and
waits for the read thread before it closes the port.
"""
import logging
import threading
import time
from queue import Empty, Queue

from autoserial.factories import ForwarderFactory, create_frame_decoder, create_parser
from autoserial.forwarding.base import describe_error
from autoserial.model import ConnectionState, DeviceProfile, DeviceStatus, RawDataEvent, SendResult
from autoserial.ports.locator import SerialPortLocator
from autoserial.ports.serial_port import PortError, open_serial_port
from autoserial.support.async_loop import AsyncLoop
from autoserial.support.events import EventSource
from autoserial.support.retry_strategy import ExponentialBackoff
from autoserial.support.throttle import ThrottledLogger

logger = logging.getLogger(__name__)

# how often the read thread polls for data, and the longest wait for a burst of data to settle
POLL_INTERVAL = 0.01
SETTLE_TIME = 0.1

# how often an idle runner checks whether it should connect
IDLE_INTERVAL = 1.0

# how long the decode loop waits for data before checking for cancellation
QUEUE_TIMEOUT = 0.1

RATE_INTERVAL = 0.1

# posted by the read thread when it finishes
END_OF_DATA = object()


class Pipeline:
    """
    The profile a runner works from, together with the decoder, parser and forwarders built from it.
    A runner replaces its pipeline as a whole; a pipeline is never modified.
    """

    def __init__(self, profile: DeviceProfile, decoder, parser, forwarders=()):
        self.profile = profile
        self.decoder = decoder
        self.parser = parser
        self.forwarders = tuple(forwarders)

    @property
    def connection(self):
        return self.profile.connection

    @property
    def active_forwarders(self):
        return [f for f in self.forwarders if f.enabled]


class PortReader(AsyncLoop):
    """
    Reads batches of bytes from an open port and puts them on a queue.
    A read error is put on the queue, and ends the reader. The queue always ends with END_OF_DATA.
    """

    def __init__(self, port, chunks: Queue, on_data=None, name=None, poll_interval=POLL_INTERVAL,
                 settle_time=SETTLE_TIME):
        super().__init__(name=name)
        self.port = port
        self.chunks = chunks
        self.on_data = on_data
        self.poll_interval = poll_interval
        self.settle_time = settle_time

    def loop(self):
        waiting = self.port.bytes_waiting
        if not waiting:
            self.wait(self.poll_interval)
            return
        waiting = self._settle(waiting)
        if not self.running():
            return
        data = self.port.read(waiting)
        if data:
            if self.on_data:
                self.on_data(data)
            self.chunks.put(data)

    def _settle(self, waiting):
        """ waits until the number of bytes waiting stops changing, so a burst is read in one go. """
        elapsed = 0
        while elapsed < self.settle_time and not self.wait(self.poll_interval):
            elapsed += self.poll_interval
            current = self.port.bytes_waiting
            if current == waiting:
                break
            waiting = current
        return waiting

    def exception_handler(self, e):
        self.chunks.put(e)
        self.stop_event.set()

    def shutdown(self):
        self.chunks.put(END_OF_DATA)


class DeviceRunLoop(AsyncLoop):
    """ The run thread of a device runner. Each iteration is one connection attempt. """

    def __init__(self, runner):
        super().__init__(name="device-%s" % runner.device_id)
        self.runner = runner

    def loop(self):
        self.runner._attempt(self)


class DeviceRunner:
    """
    Maintains the connection to one serial device and pushes its data through the pipeline.

    The device starts automatically when its profile is enabled. A manual start connects a device
    regardless of the profile; a manual stop keeps an enabled device stopped until it is started
    manually or its profile is enabled again.
    """

    def __init__(self, profile: DeviceProfile, locator=None, open_port=open_serial_port,
                 forwarder_factory=None, backoff=None, clock=time.monotonic):
        self.locator = locator or SerialPortLocator()
        self.open_port = open_port
        self.forwarder_factory = forwarder_factory or ForwarderFactory()
        self.backoff = backoff or ExponentialBackoff()
        self.clock = clock
        self.raw_data = EventSource()
        self.errors = ThrottledLogger(logger)

        self._lock = threading.Lock()
        self._write_gate = threading.Semaphore(1)
        self.pipeline = self._build_pipeline(profile)
        self.port = None
        self.port_name = None
        self.state = ConnectionState.DISCONNECTED
        self.connection_error = None
        self.forwarder_error = None
        self.manual_override = False
        self.manual_stop = False
        self.run_loop = None

        self.total_messages = 0
        self._rate = 0.0
        self._rate_total = 0
        self._rate_time = clock()

    def _build_pipeline(self, profile: DeviceProfile) -> Pipeline:
        return Pipeline(profile, create_frame_decoder(profile.frame_decoder), create_parser(profile.parser),
                        self.forwarder_factory.create_all(profile.forwarders))

    @property
    def device_id(self):
        return self.pipeline.profile.device_id

    @property
    def display_name(self):
        return self.pipeline.connection.display_name

    @property
    def running(self):
        return self.run_loop is not None

    def should_auto_start(self):
        return self.pipeline.connection.enabled and not self.manual_stop

    def _should_connect(self):
        with self._lock:
            return self.manual_override or self.should_auto_start()

    def start(self):
        """ Starts the device if its profile is enabled and it has not been stopped manually. """
        with self._lock:
            if not self.should_auto_start():
                return
        self._launch()

    def start_manual(self):
        """ Starts the device even when its profile is disabled. """
        with self._lock:
            self.manual_override = True
            self.manual_stop = False
        self._launch()

    def stop(self):
        with self._lock:
            self.manual_override = False
            forwarders = self.pipeline.forwarders
        self._stop_loop()
        self._stop_forwarders(forwarders)

    def stop_manual(self):
        """ Stops the device, and keeps it stopped when the runner is started again. """
        with self._lock:
            self.manual_stop = True
        self.stop()

    def _launch(self):
        with self._lock:
            if self.run_loop is not None:
                return
            self.run_loop = loop = DeviceRunLoop(self)
            forwarders = self.pipeline.forwarders
        logger.info("starting device %s (%s)", self.device_id, self.display_name)
        self._start_forwarders(forwarders)
        loop.start()

    def _stop_loop(self):
        with self._lock:
            loop, self.run_loop = self.run_loop, None
        if loop is not None:
            loop.stop()
            logger.info("stopped device %s (%s)", self.device_id, self.display_name)
        with self._lock:
            self.state = ConnectionState.DISCONNECTED
            self.port_name = None
            self.connection_error = None

    def _start_forwarders(self, forwarders):
        error = None
        for forwarder in forwarders:
            if not forwarder.enabled:
                continue
            try:
                forwarder.start()
            except Exception as e:
                logger.error("%s forwarder for device %s failed to start: %s", forwarder.name, self.device_id, e)
                if error is None:
                    error = "%s failed to start: %s" % (forwarder.name, describe_error(e))
        with self._lock:
            self.forwarder_error = error

    def _stop_forwarders(self, forwarders):
        for forwarder in forwarders:
            try:
                forwarder.stop()
            except Exception as e:
                logger.warning("%s forwarder for device %s failed to stop: %s", forwarder.name, self.device_id, e)

    def apply_profile(self, profile: DeviceProfile):
        """
        Replaces the device's profile. The serial connection is restarted only when its line settings,
        its identity or its enabled flag change; the forwarders are always rebuilt.
        """
        pipeline = self._build_pipeline(profile)
        with self._lock:
            old = self.pipeline
            self.pipeline = pipeline
            before, after = old.connection, pipeline.connection
            if after.enabled and not before.enabled:
                self.manual_stop = False
            running = self.run_loop is not None
            was_manual = self.manual_override
            restart = running and not (before.line_settings_equal(after) and before.identity_equal(after)
                                       and before.enabled == after.enabled)
        if running:
            self._stop_forwarders(old.forwarders)
        if restart:
            logger.info("connection settings changed for device %s, restarting", self.device_id)
            self._stop_loop()
            with self._lock:
                relaunch = was_manual or self.should_auto_start()
                self.manual_override = was_manual
            if relaunch:
                self._launch()
        elif running:
            self._start_forwarders(pipeline.forwarders)

    def _set_state(self, state, error=None):
        with self._lock:
            self.state = state
            if error is not None:
                self.connection_error = error

    def _attempt(self, loop: AsyncLoop):
        """ One pass of the connection cycle: connect, pump data until the connection ends, back off. """
        if not self._should_connect():
            self._set_state(ConnectionState.DISCONNECTED)
            loop.wait(IDLE_INTERVAL)
            return

        self._set_state(ConnectionState.CONNECTING)
        connection = self.pipeline.connection
        port = None
        error = None
        try:
            port_name = self.locator.resolve_port_name(connection)
            if not port_name:
                raise PortError("Port not found")
            port = self.open_port(port_name, connection)
            with self._lock:
                self.pipeline.decoder.reset()
                self.port = port
                self.port_name = port_name
                self.state = ConnectionState.CONNECTED
                self.connection_error = None
            self.backoff.reset()
            logger.info("device %s connected on %s", self.device_id, port_name)
            self._pump(port, loop)
            error = "Connection closed"
        except Exception as e:
            error = str(e) or type(e).__name__
            if loop.running():
                self._log_connect_error(error, e)
        finally:
            with self._lock:
                self.port = None
            if port is not None:
                self._close(port)

        if loop.running():
            self._set_state(ConnectionState.RECONNECTING, error)
            loop.wait(self.backoff.next())

    def _log_connect_error(self, error, e):
        with self._lock:
            repeated = error == self.connection_error
        if repeated:
            logger.debug("device %s: %s", self.device_id, error)
        elif isinstance(e, PortError):
            logger.warning("device %s: %s", self.device_id, error)
        else:
            logger.exception("device %s: connection failed", self.device_id)

    def _close(self, port):
        try:
            port.close()
        except Exception as e:
            logger.debug("closing port for device %s failed: %s", self.device_id, e)

    def _pump(self, port, loop: AsyncLoop):
        """
        Runs the decode loop for an open port, with a read thread filling the queue.
        Returns when the loop is stopped or the reader ends; raises the reader's error.
        """
        chunks = Queue()
        reader = PortReader(port, chunks, self._publish_raw, name="device-%s-reader" % self.device_id)
        reader.start()
        try:
            while loop.running():
                try:
                    item = chunks.get(timeout=QUEUE_TIMEOUT)
                except Empty:
                    continue
                if item is END_OF_DATA:
                    return
                if isinstance(item, Exception):
                    raise item
                self._process(item)
        finally:
            reader.stop()

    def _publish_raw(self, data):
        event = RawDataEvent(self.device_id, bytes(data))
        for handler in self.raw_data.handlers():
            try:
                handler(event)
            except Exception as e:
                logger.warning("raw data handler failed for device %s: %s", self.device_id, e)

    def _process(self, chunk):
        with self._lock:
            pipeline = self.pipeline
        for frame in pipeline.decoder.decode(chunk):
            try:
                messages = pipeline.parser.parse(frame)
            except Exception as e:
                logger.debug("device %s: parse failed: %s", self.device_id, e)
                continue
            for message in messages:
                with self._lock:
                    self.total_messages += 1
                self._forward(pipeline, message)

    def _forward(self, pipeline, message):
        for forwarder in pipeline.active_forwarders:
            try:
                forwarder.forward(message)
            except Exception as e:
                self.errors.error("%s forwarder for device %s failed: %s", forwarder.name, self.device_id, e)

    def send(self, data, timeout=None) -> SendResult:
        """
        Writes data to the device's port.
        :param timeout: the longest wait, in seconds, for another send to finish. None waits indefinitely.
        """
        if not data:
            return SendResult.fail("no data to send")
        if isinstance(data, str):
            data = data.encode('utf-8')
        with self._lock:
            port = self.port
            connected = self.state is ConnectionState.CONNECTED
        if not connected or port is None or not port.is_open:
            return SendResult.fail("device not connected")
        if not self._write_gate.acquire(timeout=timeout):
            return SendResult.fail("send timed out")
        try:
            port.write(bytes(data))
            return SendResult.ok()
        except Exception as e:
            logger.warning("send to device %s failed: %s", self.device_id, e)
            return SendResult.fail(str(e) or type(e).__name__)
        finally:
            self._write_gate.release()

    def get_status(self) -> DeviceStatus:
        with self._lock:
            pipeline = self.pipeline
            now = self.clock()
            elapsed = now - self._rate_time
            if elapsed > RATE_INTERVAL:
                self._rate = (self.total_messages - self._rate_total) / elapsed
                self._rate_total = self.total_messages
                self._rate_time = now
            return DeviceStatus(
                device_id=pipeline.profile.device_id,
                display_name=pipeline.connection.display_name,
                port_name=self.port_name,
                connection_state=self.state,
                running=self.run_loop is not None,
                parser_name=pipeline.parser.name,
                active_forwarders=[f.name for f in pipeline.active_forwarders],
                total_messages=self.total_messages,
                messages_per_second=self._rate,
                last_error=self.connection_error or self.forwarder_error)
