"""Eventos del enlace con la báscula.

Eventos de salida (WeightEvent) que se publican en el BroadcastSink, y
eventos de entrada que consume el loop serializado de LinkSession.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from .exceptions import ScaleBridgeError
from .models import WeightReading


@dataclass(frozen=True)
class ReadingUpdated:
    """Nueva lectura aceptada."""
    reading: WeightReading

    @property
    def display(self) -> str:
        return self.reading.display


@dataclass(frozen=True)
class ConnectivityChanged:
    """Cambio de conectividad con la báscula."""
    connected: bool


WeightEvent = Union[ReadingUpdated, ConnectivityChanged]


@dataclass(frozen=True)
class DatagramReceived:
    frame: bytes
    source: Optional[tuple] = None
    received_at: Optional[float] = None


@dataclass(frozen=True)
class HealthCheck:
    now: float


@dataclass(frozen=True)
class ReconnectDue:
    pass


@dataclass(frozen=True)
class ConnectionLost:
    error: ScaleBridgeError = field(
        default_factory=lambda: ScaleBridgeError("Conexión perdida")
    )


@dataclass(frozen=True)
class Shutdown:
    pass
