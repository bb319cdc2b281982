import unittest
from unittest.mock import Mock

import paho.mqtt.client as mqtt
from hamcrest import assert_that, is_, none

from autoserial.forwarding.mqtt import MqttForwarder, MqttForwarderOptions
from autoserial.model import ParsedMessage


class MqttForwarderTest(unittest.TestCase):

    def setUp(self):
        self.now = 0
        self.client = Mock()
        self.client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_SUCCESS)
        self.options = MqttForwarderOptions(broker='broker.local', port=1884, topic='scale/weight', qos=1,
                                            retain=True)
        self.sut = MqttForwarder(self.options, client_factory=Mock(return_value=self.client),
                                 clock=lambda: self.now)

    def test_start_connects_and_starts_loop(self):
        self.sut.start()
        self.client.connect.assert_called_once_with('broker.local', 1884, 60)
        self.client.loop_start.assert_called_once_with()
        assert_that(self.sut.connected, is_(True))

    def test_start_twice_connects_once(self):
        self.sut.start()
        self.sut.start()
        assert_that(self.client.connect.call_count, is_(1))
        assert_that(self.sut.client_factory.call_count, is_(1))

    def test_forward_publishes(self):
        self.sut.start()
        self.sut.forward(ParsedMessage("12.5"))
        self.client.publish.assert_called_once_with('scale/weight', b'12.5', 1, True)

    def test_connect_failure_retried_from_forward_after_delay(self):
        self.client.connect.side_effect = [ConnectionRefusedError(), ConnectionRefusedError(), None]
        self.sut.start()
        self.sut.forward(ParsedMessage("dropped"))
        assert_that(self.client.connect.call_count, is_(1))
        self.now = 1
        self.sut.forward(ParsedMessage("dropped"))
        assert_that(self.client.connect.call_count, is_(2))
        self.client.publish.assert_not_called()
        self.now = 3
        self.sut.forward(ParsedMessage("sent"))
        assert_that(self.client.connect.call_count, is_(3))
        self.client.publish.assert_called_once_with('scale/weight', b'sent', 1, True)
        self.client.loop_start.assert_called_once_with()

    def test_publish_error_is_not_raised(self):
        self.client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_NO_CONN)
        self.sut.start()
        self.sut.forward(ParsedMessage("x"))
        self.client.publish.side_effect = ValueError("bad topic")
        self.sut.forward(ParsedMessage("x"))

    def test_qos_is_clamped(self):
        assert_that(MqttForwarder(MqttForwarderOptions(qos=5)).qos, is_(2))
        assert_that(MqttForwarder(MqttForwarderOptions(qos=-1)).qos, is_(0))

    def test_disabled_does_nothing(self):
        sut = MqttForwarder(self.options, enabled=False, client_factory=Mock(return_value=self.client))
        sut.start()
        sut.forward(ParsedMessage("x"))
        sut.client_factory.assert_not_called()

    def test_forward_before_start_is_dropped(self):
        self.sut.forward(ParsedMessage("x"))
        self.client.publish.assert_not_called()

    def test_stop_disconnects(self):
        self.sut.start()
        self.sut.stop()
        self.client.disconnect.assert_called_once_with()
        self.client.loop_stop.assert_called_once_with()
        assert_that(self.sut.client, is_(none()))
        assert_that(self.sut.connected, is_(False))

    def test_stop_when_never_connected(self):
        self.client.connect.side_effect = OSError()
        self.sut.start()
        self.sut.stop()
        self.client.disconnect.assert_not_called()

    def test_creates_paho_client(self):
        options = MqttForwarderOptions(username='user', password='secret', client_id='scale-1')
        client = MqttForwarder(options)._create_client()
        assert_that(client, is_(mqtt.Client))
