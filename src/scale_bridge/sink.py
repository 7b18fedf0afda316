"""Destinos de difusión de eventos de peso."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from .events import WeightEvent

logger = logging.getLogger(__name__)


class BroadcastSink(ABC):
    """
    Destino abstracto de los eventos de peso.

    publish() no debe bloquear esperando a los suscriptores: la entrega y la
    gestión de suscriptores son responsabilidad de la implementación.
    """

    @abstractmethod
    def publish(self, event: WeightEvent) -> None:
        """Publica un evento (fire-and-forget)."""

    def close(self) -> None:
        """Libera el transporte de suscriptores."""


class FanoutSink(BroadcastSink):
    """Reenvía cada evento a varios sinks, aislando los que fallan."""

    def __init__(self, sinks: Iterable[BroadcastSink] = ()):
        self.sinks: list[BroadcastSink] = list(sinks)

    def add(self, sink: BroadcastSink):
        self.sinks.append(sink)

    def publish(self, event: WeightEvent) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception as e:
                logger.error(f"Error al publicar en {type(sink).__name__}: {e}")

    def close(self) -> None:
        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                logger.error(f"Error al cerrar {type(sink).__name__}: {e}")
