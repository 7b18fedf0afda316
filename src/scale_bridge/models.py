"""Modelos de datos del enlace con la báscula."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

NO_DATA_DISPLAY = "No data"
DISPLAY_QUANTUM = Decimal("0.001")


class ConnectionState(Enum):
    """Estado de la conexión con la báscula."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True)
class WeightReading:
    """Lectura de peso decodificada de una trama de la báscula."""
    gross: Decimal
    tare: Decimal
    unit: str
    captured_at: datetime

    @property
    def net(self) -> Decimal:
        """Peso neto (bruto - tara)."""
        return self.gross - self.tare

    @property
    def display(self) -> str:
        """Peso bruto con 3 decimales seguido de la unidad, p. ej. '0.162 kg'."""
        # Redondeo half-up; "+ 0" convierte -0.000 en 0.000
        value = self.gross.quantize(DISPLAY_QUANTUM, rounding=ROUND_HALF_UP) + 0
        return f"{value} {self.unit}"

    def same_weight(self, other: Optional["WeightReading"]) -> bool:
        """Compara bruto, tara y unidad ignorando el instante de captura."""
        if other is None:
            return False
        return (
            self.gross == other.gross
            and self.tare == other.tare
            and self.unit == other.unit
        )


@dataclass(frozen=True)
class Snapshot:
    """Copia inmutable del último estado conocido de la báscula."""
    reading: Optional[WeightReading] = None
    connected: bool = False
    last_response_at: Optional[float] = None

    @property
    def display(self) -> str:
        if self.reading is None:
            return NO_DATA_DISPLAY
        return self.reading.display

    def to_dict(self) -> dict:
        """
        Convierte el snapshot al payload expuesto hacia afuera.

        Los valores Decimal se convierten a float para poder serializar a JSON.
        """
        reading = self.reading
        return {
            "display": self.display,
            "grossValue": float(reading.gross) if reading else None,
            "tareValue": float(reading.tare) if reading else None,
            "netValue": float(reading.net) if reading else None,
            "unit": reading.unit if reading else None,
            "connected": self.connected,
            "timestamp": (
                int(reading.captured_at.timestamp() * 1000) if reading else None
            ),
        }
