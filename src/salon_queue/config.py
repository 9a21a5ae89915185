"""Configuration for the salon queue service.

Usage:
    from salon_queue.config import Config

    # Access config values
    database_url = Config.DATABASE_URL
    default_minutes = Config.DEFAULT_SERVICE_MINUTES
"""

import os


class Config:
    """Centralized configuration for the salon queue service.

    All configuration values are class variables that can be accessed directly.
    Values are loaded from environment variables with sensible defaults.

    Example:
        from salon_queue.config import Config

        print(Config.DATABASE_URL)
        print(Config.MQTT_TOPIC_PREFIX)
    """

    # ========================================================================
    # Helper methods (static)
    # ========================================================================

    @staticmethod
    def _get_value(key: str, default: str) -> str:
        """Get configuration value from environment with optional default."""
        return os.getenv(key, default)

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer configuration value."""
        return int(os.getenv(key, str(default)))

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        """Get float configuration value."""
        return float(os.getenv(key, str(default)))

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Get boolean configuration value."""
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    # ========================================================================
    # Common Configuration
    # ========================================================================

    SALON_QUEUE_DIR: str = _get_value("SALON_QUEUE_DIR", ".")
    LOG_LEVEL: str = _get_value("LOG_LEVEL", "INFO")

    # ========================================================================
    # Database Configuration
    # ========================================================================

    DATABASE_URL: str = _get_value("DATABASE_URL", f"sqlite:///{SALON_QUEUE_DIR}/salon_queue.db")
    DATABASE_ECHO: bool = _get_bool("DATABASE_ECHO", False)

    # ========================================================================
    # Queue Configuration
    # ========================================================================

    # Used when a salon has no default of its own and a service has no duration
    DEFAULT_SERVICE_MINUTES: float = _get_float("DEFAULT_SERVICE_MINUTES", 15)
    LOYALTY_POINTS_DIVISOR: int = _get_int("LOYALTY_POINTS_DIVISOR", 10)

    # ========================================================================
    # API Configuration
    # ========================================================================

    API_HOST: str = _get_value("API_HOST", "127.0.0.1")
    API_PORT: int = _get_int("API_PORT", 8000)

    # ========================================================================
    # MQTT Configuration
    # ========================================================================

    BROADCAST_TYPE: str = _get_value("BROADCAST_TYPE", "none")
    MQTT_BROKER: str = _get_value("MQTT_BROKER", "localhost")
    MQTT_PORT: int = _get_int("MQTT_PORT", 1883)
    MQTT_TOPIC_PREFIX: str = _get_value("MQTT_TOPIC_PREFIX", "salon-queue")
