"""Punto de entrada principal del puente de báscula."""

import argparse
import logging
import os
import signal
import sys
from pathlib import Path

from .cache import ReadingCache
from .config import MQTTConfig, load_link_config
from .link_session import LinkSession
from .mqtt_client import ScaleMQTTClient
from .sink import FanoutSink

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False):
    """Configura logging a stdout y a archivo en LOG_DIR."""
    log_dir = os.getenv("LOG_DIR", "logs")
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(os.path.join(log_dir, 'scale_bridge.log'))
        ]
    )


class ScaleBridgeService:
    """Servicio que conecta la báscula UDP con los suscriptores MQTT."""

    def __init__(self, debug: bool = False):
        """Inicializa el servicio."""
        self.link_config = load_link_config(debug=debug)
        self.mqtt_config = MQTTConfig()
        self.cache = ReadingCache()
        self.mqtt_client = ScaleMQTTClient(self.mqtt_config, self.cache.get)
        self.sink = FanoutSink([self.mqtt_client])
        self.session = LinkSession(self.link_config, self.sink, cache=self.cache)
        self.running = False

    def start(self):
        """Inicia el servicio."""
        logger.info("=== Iniciando Scale Bridge Service ===")
        logger.info(f"MQTT Broker: {self.mqtt_config.broker}:{self.mqtt_config.port}")
        logger.info(
            f"Báscula: {self.link_config.scale_address}:{self.link_config.send_port}"
        )
        if self.link_config.debug:
            logger.debug("Modo debug habilitado")

        try:
            self.mqtt_client.connect()

            # Configurar manejador de señales para cierre graceful
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

            self.running = True
            self.session.start()

            logger.info("Servicio iniciado correctamente. Esperando datos de la báscula...")

            # Iniciar loop MQTT (bloqueante)
            self.mqtt_client.start()

        except KeyboardInterrupt:
            logger.info("Interrupción de teclado recibida")
        except Exception as e:
            logger.error(f"Error fatal: {e}", exc_info=True)
            sys.exit(1)
        finally:
            self.stop()

    def stop(self):
        """Detiene el servicio (el enlace cierra también el cliente MQTT)."""
        if not self.running:
            return

        logger.info("Deteniendo servicio...")
        self.running = False
        self.session.stop()
        logger.info("Servicio detenido")

    def _signal_handler(self, signum, frame):
        """Maneja señales del sistema para cierre graceful."""
        logger.info(f"Señal {signum} recibida, iniciando cierre...")
        self.stop()
        sys.exit(0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Puente entre una báscula UDP en modo streaming y MQTT."
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Muestra cada trama recibida en hex y ASCII.",
    )
    return parser


def main(argv: list[str] | None = None):
    """Función principal."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    service = ScaleBridgeService(debug=args.debug)
    service.start()


if __name__ == "__main__":
    main()
