"""Caché del último valor conocido de la báscula."""

import threading
from dataclasses import replace
from typing import Optional

from .models import Snapshot, WeightReading


class ReadingCache:
    """
    Guarda la última lectura y el estado de conexión.

    Un único escritor (el loop de LinkSession) y múltiples lectores. Cada
    escritura reemplaza un Snapshot inmutable bajo un lock; los lectores
    reciben siempre una copia puntual, nunca una referencia viva.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = Snapshot()

    def get(self) -> Snapshot:
        """Retorna el snapshot actual."""
        with self._lock:
            return self._snapshot

    def update_reading(self, reading: WeightReading) -> Snapshot:
        """Guarda una nueva lectura."""
        return self._swap(reading=reading)

    def mark_response(self, timestamp: float) -> Snapshot:
        """Registra el instante (monotónico) de la última respuesta."""
        return self._swap(last_response_at=timestamp)

    def set_connected(self, connected: bool) -> Snapshot:
        """Actualiza la bandera de conexión."""
        return self._swap(connected=connected)

    @property
    def last_response_at(self) -> Optional[float]:
        return self.get().last_response_at

    def _swap(self, **changes) -> Snapshot:
        with self._lock:
            self._snapshot = replace(self._snapshot, **changes)
            return self._snapshot
