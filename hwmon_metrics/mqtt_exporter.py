from __future__ import annotations

import logging
import ssl
from typing import Any

import paho.mqtt.client as mqtt
from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricExportResult,
    MetricsData,
)

from hwmon_metrics.config import MqttConfig


class MqttMetricExporter(MetricExporter):
    """Publishes each metrics export batch as OTLP JSON to an MQTT topic.

    Availability is announced on ``<base_topic>/status`` as retained
    ``online``/``offline`` messages, with ``offline`` also set as the will.
    """

    def __init__(self, config: MqttConfig, client: mqtt.Client | None = None) -> None:
        super().__init__()
        self.config = config
        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._connected = False
        self._shutdown = False

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if config.tls_enabled:
            self.client.tls_set(ca_certs=config.ca_cert, cert_reqs=ssl.CERT_REQUIRED)
        self.client.will_set(self.availability_topic, payload="offline", qos=1, retain=True)
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def availability_topic(self) -> str:
        return f"{self.config.base_topic}/status"

    @property
    def connected(self) -> bool:
        return self._connected

    def _publish_status(self, status: str) -> None:
        self.client.publish(self.availability_topic, payload=status, qos=1, retain=True)

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            self._connected = False
            self.logger.error("MQTT broker refused connection: %s", reason_code)
            return
        self._connected = True
        self.logger.info("Connected to MQTT broker %s:%s", self.config.host, self.config.port)
        self._publish_status("online")

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected = False
        if reason_code.is_failure:
            self.logger.warning("Lost MQTT broker connection (%s); paho will reconnect.", reason_code)
        else:
            self.logger.info("Disconnected from MQTT broker.")

    def connect(self) -> None:
        self.logger.info("Connecting to MQTT broker %s:%s", self.config.host, self.config.port)
        self.client.connect(self.config.host, self.config.port, keepalive=self.config.keepalive)
        self.client.loop_start()

    def export(
        self,
        metrics_data: MetricsData,
        timeout_millis: float = 10_000,
        **kwargs: Any,
    ) -> MetricExportResult:
        if self._shutdown:
            self.logger.warning("Exporter is shut down; dropping metrics batch.")
            return MetricExportResult.FAILURE
        if not self._connected:
            self.logger.debug("Broker not connected; paho queues the batch.")
        result = self.client.publish(
            self.config.base_topic,
            payload=metrics_data.to_json(indent=None),
            qos=self.config.qos,
            retain=self.config.retain,
        )
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error("Publishing metrics to %s failed: rc=%s", self.config.base_topic, result.rc)
            return MetricExportResult.FAILURE
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs: Any) -> None:
        if self._shutdown:
            return
        self._shutdown = True
        if self._connected:
            self._publish_status("offline")
        self.client.loop_stop()
        self.client.disconnect()
