"""Configuración del puente de báscula."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Cargar variables de entorno desde .env antes de leer os.getenv()
load_dotenv()

DEFAULT_SCALE_IP = "192.168.4.1"


@dataclass
class MQTTConfig:
    """Configuración del broker MQTT donde se difunden los eventos de peso."""
    broker: str = os.getenv("MQTT_BROKER", "localhost")
    port: int = int(os.getenv("MQTT_PORT", "1883"))
    username: str | None = os.getenv("MQTT_USERNAME")
    password: str | None = os.getenv("MQTT_PASSWORD")
    use_ssl: bool = os.getenv("MQTT_USE_SSL", "false").lower() == "true"
    transport: str = os.getenv("MQTT_TRANSPORT", "websockets")
    topic_prefix: str = os.getenv("MQTT_TOPIC_PREFIX", "pesanet/scales")
    scale_id: str = os.getenv("SCALE_ID", "scale-1")

    @property
    def weight_topic(self) -> str:
        """Tópico donde se publican las lecturas."""
        return f"{self.topic_prefix}/{self.scale_id}/weight"

    @property
    def status_topic(self) -> str:
        """Tópico donde se publica el estado de conexión."""
        return f"{self.topic_prefix}/{self.scale_id}/status"

    @property
    def command_topic(self) -> str:
        """Tópico para recibir comandos."""
        return f"{self.topic_prefix}/{self.scale_id}/command"

    @property
    def response_topic(self) -> str:
        """Tópico para enviar respuestas."""
        return f"{self.topic_prefix}/{self.scale_id}/response"


@dataclass(frozen=True)
class LinkSessionConfig:
    """Configuración del enlace UDP con la báscula."""
    scale_address: str = DEFAULT_SCALE_IP
    send_port: int = 4444
    receive_port: int = 5555
    stale_after_ms: int = 15000
    reconnect_delay_ms: int = 2000
    health_check_interval_ms: int = 10000
    bind_address: str = "0.0.0.0"
    shutdown_grace_ms: int = 100
    debug: bool = False

    @property
    def scale_endpoint(self) -> tuple[str, int]:
        """Dirección (ip, puerto) a la que se envían los comandos."""
        return (self.scale_address, self.send_port)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} debe ser un entero, se recibió: {raw!r}")
    if value < 0:
        raise ValueError(f"{name} no puede ser negativo: {value}")
    return value


def load_link_config(debug: bool = False) -> LinkSessionConfig:
    """
    Carga la configuración del enlace desde variables de entorno.

    Raises:
        ValueError: Si algún valor numérico es inválido
    """
    return LinkSessionConfig(
        scale_address=os.getenv("SCALE_IP") or DEFAULT_SCALE_IP,
        send_port=_env_int("SCALE_SEND_PORT", 4444),
        receive_port=_env_int("SCALE_RECEIVE_PORT", 5555),
        stale_after_ms=_env_int("SCALE_STALE_AFTER_MS", 15000),
        reconnect_delay_ms=_env_int("SCALE_RECONNECT_DELAY_MS", 2000),
        health_check_interval_ms=_env_int("SCALE_HEALTH_CHECK_INTERVAL_MS", 10000),
        debug=debug,
    )
