"""
Publishes messages to an MQTT broker using paho-mqtt.
"""
import logging
import threading
import time

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from autoserial.forwarding.base import Forwarder
from autoserial.support.options import Options
from autoserial.support.retry_strategy import ExponentialBackoff, RetryGate

logger = logging.getLogger(__name__)


class MqttForwarderOptions(Options):
    defaults = {
        'broker': 'localhost',
        'port': 1883,
        'topic': 'demo/topic',
        'username': '',
        'password': '',
        'use_tls': False,
        'qos': 0,
        'retain': False,
        'client_id': '',
        'keepalive': 60,
    }


class MqttForwarder(Forwarder):
    """
    Publishes the text of each message to a topic.

    The first connection is made when the forwarder starts. If the broker cannot be reached, the
    connection is tried again from `forward`, no sooner than the retry delay, and messages are
    dropped meanwhile. Once connected, the paho network loop reconnects by itself.
    """
    name = 'MQTT'

    def __init__(self, options: MqttForwarderOptions = None, enabled=True, client_factory=None,
                 clock=time.monotonic):
        """
        :param client_factory: creates the paho client. The default builds one from the options.
        """
        super().__init__(enabled, logger)
        self.options = options or MqttForwarderOptions()
        self.backoff = ExponentialBackoff()
        self.gate = RetryGate(self.backoff, clock)
        self.client_factory = client_factory or self._create_client
        self.client = None
        self.connected = False      # True once the first connection succeeded
        self._lock = threading.Lock()

    @property
    def qos(self):
        return max(0, min(2, self.options.qos))

    @property
    def endpoint(self):
        return "%s:%d" % (self.options.broker, self.options.port)

    def _create_client(self):
        options = self.options
        client = mqtt.Client(callback_api_version=CallbackAPIVersion.VERSION2, client_id=options.client_id)
        if options.username:
            client.username_pw_set(options.username, options.password or None)
        if options.use_tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=int(self.backoff.min_delay), max_delay=int(self.backoff.max_delay))
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        return client

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        logger.info("MQTT connected to %s: %s", self.endpoint, reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        logger.info("MQTT disconnected from %s: %s", self.endpoint, reason_code)

    def start(self):
        if not self.enabled:
            return
        with self._lock:
            if self.client is None:
                self.client = self.client_factory()
            self._connect()

    def _connect(self):
        """
        Makes the first connection to the broker, unless waiting to retry. Called with the lock held.
        """
        if self.connected or not self.gate.ready():
            return self.connected
        options = self.options
        try:
            self.client.connect(options.broker, options.port, options.keepalive)
        except (OSError, ValueError) as e:
            delay = self.gate.failed()
            self.errors.error("MQTT connect to %s failed, retrying in %.0fs: %s", self.endpoint, delay, e)
            return False
        self.client.loop_start()
        self.gate.succeeded()
        self.connected = True
        return True

    def forward(self, message):
        if not self.enabled:
            return
        with self._lock:
            client = self.client
            if client is None or not self._connect():
                return
        try:
            info = client.publish(self.options.topic, message.text.encode('utf-8'), self.qos, self.options.retain)
        except (ValueError, RuntimeError) as e:
            self.errors.error("MQTT publish to %s failed: %s", self.options.topic, e)
            return
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.errors.warning("MQTT publish to %s failed: %s", self.options.topic, mqtt.error_string(info.rc))

    def stop(self):
        with self._lock:
            client, self.client = self.client, None
            connected, self.connected = self.connected, False
            self.gate.succeeded()
        if client is not None and connected:
            try:
                client.disconnect()
            finally:
                client.loop_stop()
