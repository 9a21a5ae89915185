"""MQTT relay for queue updates.

Events from the broadcast channel are republished as JSON on
``<topic_prefix>/salons/<salon_id>/queue`` so dashboards and other services
can follow a salon's queue without polling.
"""

import logging

import paho.mqtt.client as mqtt

from .broadcast import ALL_SALONS, QueueBroadcastChannel, Subscription
from .schemas import QueueEvent

logger = logging.getLogger(__name__)


def salon_queue_topic(salon_id: str, topic_prefix: str = "salon-queue") -> str:
    return f"{topic_prefix}/salons/{salon_id}/queue"


class MQTTBroadcaster:
    """MQTT publisher for queue events."""

    def __init__(self, broker: str, port: int):
        self.broker = broker
        self.port = port
        self.client: mqtt.Client | None = None
        self.connected = False

    def connect(self) -> bool:
        try:
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
            self.client.on_connect = self._on_connect
            self.client.connect(self.broker, self.port, keepalive=60)
            self.client.loop_start()
            self.connected = True
            return True
        except Exception as e:
            logger.warning(f"Failed to connect to MQTT broker: {e}")
            return False

    def disconnect(self):
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            self.connected = False

    def publish_event(self, topic: str, payload: str, qos: int = 1) -> bool:
        if not self.connected or not self.client:
            return False
        try:
            result = self.client.publish(topic, payload, qos=qos)
            return result.rc == mqtt.MQTT_ERR_SUCCESS
        except Exception as e:
            logger.error(f"Error publishing event: {e}")
            return False

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        self.connected = not reason_code.is_failure


class NoOpBroadcaster:
    """No-operation broadcaster for testing or when MQTT disabled."""
    def connect(self) -> bool:
        return True
    def disconnect(self):
        pass
    def publish_event(self, topic: str, payload: str, qos: int = 1) -> bool:
        return True


def create_broadcaster(broadcast_type: str, broker: str, port: int) -> MQTTBroadcaster | NoOpBroadcaster:
    """Create and connect a broadcaster for the configured transport.

    The caller owns the returned instance and must disconnect it.
    """
    broadcaster: MQTTBroadcaster | NoOpBroadcaster
    if broadcast_type == "mqtt":
        broadcaster = MQTTBroadcaster(broker, port)
    else:
        broadcaster = NoOpBroadcaster()
    _ = broadcaster.connect()
    return broadcaster


class MqttQueueRelay:
    """Broadcast channel listener forwarding every salon's events to MQTT."""

    def __init__(
        self,
        broadcaster: MQTTBroadcaster | NoOpBroadcaster,
        topic_prefix: str = "salon-queue",
    ):
        self.broadcaster = broadcaster
        self.topic_prefix = topic_prefix
        self._subscription: Subscription | None = None

    def attach(self, channel: QueueBroadcastChannel) -> Subscription:
        if self._subscription is None:
            self._subscription = channel.subscribe(ALL_SALONS, self)
        return self._subscription

    def detach(self, channel: QueueBroadcastChannel) -> None:
        if self._subscription is not None:
            _ = channel.unsubscribe(self._subscription)
            self._subscription = None

    def __call__(self, event: QueueEvent) -> None:
        topic = salon_queue_topic(event.salon_id, self.topic_prefix)
        if not self.broadcaster.publish_event(topic, event.model_dump_json()):
            logger.warning(f"Queue update for salon {event.salon_id} not relayed to MQTT")
