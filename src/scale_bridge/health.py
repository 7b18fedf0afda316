"""Monitor de salud de la conexión con la báscula."""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from .events import HealthCheck
from .models import ConnectionState

logger = logging.getLogger(__name__)


class HealthState(Enum):
    """Estado del monitor de salud."""
    LIVE = "live"
    STALE_PENDING = "stale_pending"


class HealthMonitor:
    """
    Detecta la pérdida de conexión por ausencia de respuestas.

    UDP no avisa de desconexiones, así que cada `interval_s` se publica un
    HealthCheck en el loop de la sesión, que llama a evaluate() con su estado.
    La latencia de detección está acotada por interval_s + stale_after_s.

    Args:
        post: Función que encola un evento en el loop de la sesión
        clock: Reloj monotónico en segundos
        interval_s: Periodo del chequeo
        stale_after_s: Segundos sin respuesta para considerar la conexión perdida
    """

    def __init__(
        self,
        post: Callable[[HealthCheck], None],
        clock: Callable[[], float],
        interval_s: float,
        stale_after_s: float,
    ):
        self._post = post
        self._clock = clock
        self.interval_s = interval_s
        self.stale_after_s = stale_after_s
        self.state = HealthState.LIVE
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def evaluate(
        self,
        now: float,
        last_response_at: Optional[float],
        connection_state: ConnectionState,
    ) -> bool:
        """
        Decide si la conexión debe darse por perdida.

        Returns:
            True solo si el estado es CONNECTED y la última respuesta es
            más antigua que stale_after_s
        """
        if connection_state is not ConnectionState.CONNECTED:
            return False
        if last_response_at is None:
            return False
        if now - last_response_at <= self.stale_after_s:
            return False
        self.state = HealthState.STALE_PENDING
        return True

    def mark_live(self):
        """Vuelve a LIVE al recibir tráfico de la báscula."""
        self.state = HealthState.LIVE

    def tick(self):
        """Encola un chequeo con la hora actual."""
        self._post(HealthCheck(now=self._clock()))

    def start(self):
        """Inicia el hilo de chequeo periódico."""
        if self._thread is not None:
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="health-monitor",
        )
        self._thread.start()
        logger.info(
            f"Monitor de salud iniciado (cada {self.interval_s}s, "
            f"límite {self.stale_after_s}s sin respuesta)"
        )

    def stop(self, timeout: Optional[float] = 1.0):
        """Detiene el hilo de chequeo."""
        self._stopped.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        while not self._stopped.wait(self.interval_s):
            self.tick()
