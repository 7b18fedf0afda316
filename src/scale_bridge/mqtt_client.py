"""Cliente MQTT que difunde los eventos de peso de la báscula."""

import json
import logging
import ssl
import time
from typing import Callable

import paho.mqtt.client as mqtt

from .config import MQTTConfig
from .events import ConnectivityChanged, ReadingUpdated, WeightEvent
from .models import Snapshot
from .sink import BroadcastSink

logger = logging.getLogger(__name__)

CONNECTION_LOST_DISPLAY = "Connection lost"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ScaleMQTTClient(BroadcastSink):
    """
    Sink MQTT para los eventos de la báscula.

    Publica las lecturas y el estado de conexión en tópicos retenidos (un
    suscriptor nuevo recibe el último valor al suscribirse) y responde al
    comando get_weight con el snapshot actual.
    """

    def __init__(
        self,
        config: MQTTConfig,
        snapshot_provider: Callable[[], Snapshot],
    ):
        """
        Inicializa el cliente MQTT.

        Args:
            config: Configuración del broker MQTT
            snapshot_provider: Función que retorna el snapshot actual de la báscula
        """
        self.config = config
        self.snapshot_provider = snapshot_provider
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"scale-bridge-{config.scale_id}",
            transport=config.transport,
        )

        # Configurar WebSocket path
        if config.transport == "websockets":
            self.client.ws_set_options(path="/mqtt")

        # Configurar callbacks
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        # Si el puente muere, los suscriptores ven la báscula desconectada
        self.client.will_set(
            config.status_topic,
            json.dumps({"connected": False, "display": CONNECTION_LOST_DISPLAY}),
            qos=1,
            retain=True,
        )

        # Configurar SSL/TLS si está habilitado (wss://)
        if config.use_ssl:
            self.client.tls_set(tls_version=ssl.PROTOCOL_TLS_CLIENT)

        # Configurar autenticación si está disponible
        if config.username and config.password:
            self.client.username_pw_set(config.username, config.password)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se conecta al broker MQTT."""
        if reason_code == 0:
            logger.info("✅ CONECTADO exitosamente al broker MQTT")
            logger.info(f"   Broker: {self.config.broker}:{self.config.port}")
            client.subscribe(self.config.command_topic)
            logger.info(f"✅ Suscrito a: {self.config.command_topic}")
        else:
            logger.error(f"❌ Error al conectar al broker MQTT: {reason_code}")
            logger.error(f"   Broker: {self.config.broker}:{self.config.port}")
            logger.error(f"   Usuario: {self.config.username}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se desconecta del broker MQTT."""
        if reason_code != 0:
            logger.warning(f"Desconexión inesperada del broker MQTT, código: {reason_code}")
        else:
            logger.info("Desconectado del broker MQTT")

    def _on_message(self, client, userdata, msg):
        """Callback cuando se recibe un comando MQTT."""
        try:
            logger.info(f"Mensaje recibido en {msg.topic}")

            try:
                payload = json.loads(msg.payload.decode('utf-8'))
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.error(f"Payload inválido (no es JSON): {msg.payload}")
                self._send_error_response("Formato de comando inválido")
                return

            command = payload.get('command') if isinstance(payload, dict) else None
            logger.info(f"Comando recibido: {command}")

            if command == 'get_weight':
                self._handle_get_weight()
            else:
                logger.warning(f"Comando desconocido: {command}")
                self._send_error_response(f"Comando desconocido: {command}")

        except Exception as e:
            logger.error(f"Error al procesar mensaje: {e}", exc_info=True)

    def _handle_get_weight(self):
        """Responde get_weight con el último snapshot de la báscula."""
        snapshot = self.snapshot_provider()
        if snapshot.reading is None:
            self._send_error_response("Sin datos de la báscula")
            return

        response = {
            "scaleId": self.config.scale_id,
            "weight": float(snapshot.reading.gross),
            "status": "ok",
            "message": "Peso obtenido correctamente",
            "snapshot": snapshot.to_dict(),
            "timestamp": _now_ms(),
        }
        self._publish_json(self.config.response_topic, response, qos=1)
        logger.info(f"Respuesta enviada [{self.config.scale_id}]: {snapshot.display}")

    def _send_error_response(self, error_message: str):
        """
        Envía una respuesta de error.

        Args:
            error_message: Mensaje de error
        """
        response = {
            "scaleId": self.config.scale_id,
            "weight": None,
            "status": "error",
            "message": error_message,
            "timestamp": _now_ms(),
        }
        self._publish_json(self.config.response_topic, response, qos=1)

    def publish(self, event: WeightEvent) -> None:
        """Publica un evento de peso o conectividad (no bloqueante)."""
        if isinstance(event, ReadingUpdated):
            payload = Snapshot(reading=event.reading, connected=True).to_dict()
            self._publish_json(self.config.weight_topic, payload, retain=True)
        elif isinstance(event, ConnectivityChanged):
            payload = {
                "connected": event.connected,
                "display": None if event.connected else CONNECTION_LOST_DISPLAY,
                "timestamp": _now_ms(),
            }
            self._publish_json(self.config.status_topic, payload, qos=1, retain=True)
        else:
            logger.warning(f"Evento no soportado: {event!r}")

    def _publish_json(self, topic: str, data: dict, qos: int = 0, retain: bool = False):
        """
        Publica un diccionario como JSON.

        paho encola el mensaje y retorna sin esperar al broker.
        """
        result = self.client.publish(topic, json.dumps(data), qos=qos, retain=retain)

        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Publicado en {topic}")
        else:
            logger.error(f"Error al publicar en {topic}, código: {result.rc}")

    def connect(self):
        """Conecta al broker MQTT."""
        scheme = "ws" if self.config.transport == "websockets" else "mqtt"
        if self.config.use_ssl:
            scheme += "s"
        url = f"{scheme}://{self.config.broker}:{self.config.port}"
        try:
            logger.info("=== Intentando conectar a MQTT ===")
            logger.info(f"URL: {url}")
            logger.info(f"SSL: {'habilitado' if self.config.use_ssl else 'deshabilitado'}")
            logger.info(f"Usuario: {self.config.username}")
            logger.info(f"Password: {'***' if self.config.password else 'None'}")
            logger.info("==================================")

            self.client.connect(self.config.broker, self.config.port, keepalive=60)
            logger.info(f"✅ Conexión iniciada a {url}")
        except Exception as e:
            logger.error(f"❌ Error al conectar con el broker MQTT: {e}", exc_info=True)
            logger.error(f"URL intentada: {url}")
            raise

    def start(self):
        """Inicia el loop del cliente MQTT (bloqueante)."""
        logger.info("Iniciando cliente MQTT...")
        self.client.loop_forever()

    def close(self):
        """Detiene el cliente MQTT."""
        logger.info("Deteniendo cliente MQTT...")
        self.client.loop_stop()
        self.client.disconnect()
