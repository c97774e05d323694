import json
import unittest
from unittest import mock

import paho.mqtt.client as mqtt

from gekko2mqtt.models import MQTTConfig
from gekko2mqtt.mqtt_bridge import (
    ConnectionLostError,
    MqttBridge,
    PublishError,
    SubscribeError,
    format_payload,
)


class FormatPayloadTest(unittest.TestCase):
    def test_scalars(self):
        self.assertEqual(format_payload(50), "50")
        self.assertEqual(format_payload(45.5), "45.5")
        self.assertEqual(format_payload(10.0), "10")
        self.assertEqual(format_payload(-0.25), "-0.25")
        self.assertEqual(format_payload("Sala"), "Sala")
        self.assertEqual(format_payload(True), "true")


class MqttBridgeTest(unittest.TestCase):
    def setUp(self):
        config = MQTTConfig(root="home", host="broker.local", tls=False)
        self.bridge = MqttBridge(config)
        self.client = mock.Mock()
        self.bridge._client = self.client

    def test_publish_prefixes_root(self):
        self.client.publish.return_value = mock.Mock(rc=mqtt.MQTT_ERR_SUCCESS)

        self.bridge.publish("casa/blinds/item0/get/position", 50)

        self.client.publish.assert_called_once_with(
            "home/casa/blinds/item0/get/position", "50", qos=0, retain=False
        )

    def test_publish_json(self):
        self.client.publish.return_value = mock.Mock(rc=mqtt.MQTT_ERR_SUCCESS)

        self.bridge.publish_json("casa/blinds/item0/get/json", {"position": 50, "timestamp": 1})

        topic, payload = self.client.publish.call_args.args
        self.assertEqual(topic, "home/casa/blinds/item0/get/json")
        self.assertEqual(json.loads(payload), {"position": 50, "timestamp": 1})

    def test_publish_json_integral_floats(self):
        self.client.publish.return_value = mock.Mock(rc=mqtt.MQTT_ERR_SUCCESS)

        self.bridge.publish_json("casa/meteo/item0/get/json", {"temp": 10.0, "wind": 2.5, "label": "Nord"})

        _, payload = self.client.publish.call_args.args
        self.assertEqual(payload, '{"temp": 10, "wind": 2.5, "label": "Nord"}')

    def test_publish_json_rejects_nan(self):
        for value in (float("nan"), float("inf")):
            with self.subTest(value=value):
                with self.assertRaises(PublishError):
                    self.bridge.publish_json("casa/meteo/item0/get/json", {"temp": value})
        self.client.publish.assert_not_called()

    def test_publish_failure(self):
        self.client.publish.return_value = mock.Mock(rc=mqtt.MQTT_ERR_NO_CONN)
        with self.assertRaises(PublishError):
            self.bridge.publish("casa/getter_online", "true")

    def test_subscribe_dispatches_to_handler(self):
        self.client.subscribe.return_value = (mqtt.MQTT_ERR_SUCCESS, 1)
        received = []

        self.bridge.subscribe("casa/blinds/+/set", lambda topic, payload: received.append((topic, payload)))

        full_topic, callback = self.client.message_callback_add.call_args.args
        self.assertEqual(full_topic, "home/casa/blinds/+/set")
        callback(self.client, None, mock.Mock(topic="home/casa/blinds/item0/set", payload=b"1"))
        self.assertEqual(received, [("home/casa/blinds/item0/set", b"1")])

    def test_subscribe_failure(self):
        self.client.subscribe.return_value = (mqtt.MQTT_ERR_NO_CONN, None)
        with self.assertRaises(SubscribeError):
            self.bridge.subscribe("casa/blinds/+/set", lambda topic, payload: None)

    def test_unexpected_disconnect_reports_connection_lost(self):
        errors = []
        self.bridge.set_connection_lost_handler(errors.append)
        self.bridge._connected.set()

        self.bridge._handle_disconnect(self.client, None, None, mock.Mock(is_failure=True), None)

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], ConnectionLostError)

    def test_requested_disconnect_is_not_an_error(self):
        errors = []
        self.bridge.set_connection_lost_handler(errors.append)
        self.bridge._connected.set()

        self.bridge.disconnect()
        self.bridge._handle_disconnect(self.client, None, None, mock.Mock(is_failure=True), None)

        self.assertEqual(errors, [])


if __name__ == "__main__":
    unittest.main()
