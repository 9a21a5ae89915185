"""Run the salon queue API with uvicorn."""

import argparse
import logging

import uvicorn

from .api import create_app
from .broadcast import QueueBroadcastChannel
from .catalog import CatalogRepository
from .config import Config
from .database import Database
from .lifecycle import QueueLifecycleManager
from .mqtt import MqttQueueRelay, create_broadcaster
from .queue_store import QueueStore

logger = logging.getLogger("salon-queue")


def main() -> None:
    parser = argparse.ArgumentParser(description="Salon queue API server")
    parser.add_argument("--host", default=Config.API_HOST)
    parser.add_argument("--port", type=int, default=Config.API_PORT)
    parser.add_argument("--database-url", default=Config.DATABASE_URL)
    parser.add_argument(
        "--broadcast-type",
        default=Config.BROADCAST_TYPE,
        help="'mqtt' to relay queue updates to the broker, anything else disables it",
    )
    args = parser.parse_args()

    logging.basicConfig(level=Config.LOG_LEVEL)

    database = Database(args.database_url)
    store = QueueStore(database.session_factory)
    store.ensure_schema()
    catalog = CatalogRepository(database.session_factory)
    channel = QueueBroadcastChannel()
    channel.start()

    broadcaster = create_broadcaster(args.broadcast_type, Config.MQTT_BROKER, Config.MQTT_PORT)
    relay = MqttQueueRelay(broadcaster, Config.MQTT_TOPIC_PREFIX)
    _ = relay.attach(channel)

    manager = QueueLifecycleManager(store, catalog, channel)
    app = create_app(manager, channel, catalog)

    logger.info(f"Serving salon queue on {args.host}:{args.port} (broadcast={args.broadcast_type})")
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=Config.LOG_LEVEL.lower())
    finally:
        relay.detach(channel)
        channel.stop()
        broadcaster.disconnect()
        database.dispose()


if __name__ == "__main__":
    main()
